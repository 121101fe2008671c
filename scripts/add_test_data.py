"""
Script to add a bookable demo consultant with weekly availability
Run with: python -m scripts.add_test_data
"""
from datetime import timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from app.config import settings
from app.db.session import Database
from app.models.consultant import Consultant
from app.models.enums import SessionType
from app.services.availability_service import AvailabilityService
from app.utils.auth import create_access_token
from app.utils.time_utils import today_in

DEMO_SLUG = "demo-consultant"


def create_demo_consultant(db: Session) -> Consultant:
    """Create (or reuse) a consultant that passes every public-booking gate"""
    consultant = db.query(Consultant).filter(Consultant.slug == DEMO_SLUG).first()
    if consultant:
        print(f"⏭️  Consultant already exists: {consultant.slug}")
        return consultant

    consultant = Consultant(
        email="demo.consultant@example.com",
        first_name="Asha",
        last_name="Rao",
        phone_number="9876543210",
        slug=DEMO_SLUG,
        consultancy_sector="Career coaching",
        description="Career and interview coaching",
        personal_session_title="1-on-1 career session",
        webinar_session_title="Interview preparation webinar",
        personal_session_price=Decimal("1500.00"),
        webinar_session_price=Decimal("500.00"),
        is_active=True,
        is_email_verified=True,
        is_approved_by_admin=True,
    )
    db.add(consultant)
    db.flush()
    print(f"✅ Created consultant: {consultant.slug}")
    return consultant


def create_weekly_patterns(db: Session, consultant: Consultant) -> int:
    """Weekday mornings for 1-on-1 sessions, Saturday afternoon for webinars"""
    service = AvailabilityService(db)
    if service.list_patterns(consultant.id):
        print("⏭️  Patterns already exist")
        return 0

    count = 0
    for day in range(1, 6):  # Monday to Friday
        service.create_pattern(consultant.id, SessionType.PERSONAL, day, "09:00", "12:00")
        count += 1
    service.create_pattern(consultant.id, SessionType.WEBINAR, 6, "15:00", "17:00")
    return count + 1


def main():
    """Main function to add all test data"""
    database = Database(settings.DATABASE_URL)
    db = database.SessionLocal()

    try:
        print("🚀 Starting test data creation...")
        print("-" * 50)

        consultant = create_demo_consultant(db)
        patterns_count = create_weekly_patterns(db, consultant)
        start = today_in(settings.DEFAULT_TIMEZONE)
        slots_count = AvailabilityService(db).generate_slots_from_patterns(
            consultant.id, start, start + timedelta(days=30)
        )
        db.commit()

        print("-" * 50)
        print("✅ Test data creation complete!")
        print(f"   - Consultant: {consultant.slug}")
        print(f"   - Weekly patterns: {patterns_count}")
        print(f"   - Slots: {slots_count}")
        print(f"   - Access token: {create_access_token({'sub': consultant.id})}")

    except Exception as e:
        print(f"❌ Error creating test data: {e}")
        db.rollback()
        raise
    finally:
        db.close()
        database.dispose()


if __name__ == "__main__":
    main()
