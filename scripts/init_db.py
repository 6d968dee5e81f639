"""Database initialization and demo data script"""
import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.database import SessionLocal, engine, Base
from app.models.account import (
    Account, AccountInvite, AccountMember, AccountPermission, AccountRole, Plan, SubscriptionStatus,
)
from app.models.regulatory_rule import SYSTEM_SETTINGS_ID, RegulatoryRule, RuleCriticality, SystemSettings
from app.models.scan import Category, Marketplace
from app.models.user import User, UserRole
from app.services.account_service import create_account_for_user
from app.services.ai_service import DEFAULT_PROMPT
from app.utils.auth import get_password_hash

logger = logging.getLogger(__name__)

ADMIN_EMAIL = "admin@productlabelchecker.com"
ADMIN_PASSWORD = "admin123"
DEMO_PASSWORD = "test1234"

DEMO_RULES = [
    (Category.TOYS, Marketplace.US, "Age grading must be clearly visible",
     "Age grading helps parents choose appropriate toys. Must be prominently displayed on packaging.",
     "CPSC 16 CFR Part 1501", RuleCriticality.CRITICAL, "AGES 3+"),
    (Category.TOYS, Marketplace.US, "Choking hazard warning required for small parts",
     "Small parts can be a choking hazard for children under 3 years old.",
     "CPSC 16 CFR 1500.19", RuleCriticality.CRITICAL,
     "WARNING: CHOKING HAZARD - Small parts. Not for children under 3 years."),
    (Category.TOYS, Marketplace.US, "CPSC compliance mark required",
     "All toys must meet Consumer Product Safety Commission safety standards.",
     "CPSC 16 CFR Part 1107", RuleCriticality.CRITICAL, "Meets CPSC Safety Requirements"),
    (Category.BABY_PRODUCTS, Marketplace.US, "FDA registration number required",
     "Baby products must be registered with the Food and Drug Administration.",
     "FDA 21 CFR Part 107", RuleCriticality.CRITICAL, "FDA Registration No.: 12345678"),
    (Category.BABY_PRODUCTS, Marketplace.US, "Nutritional information for food products",
     "Baby food must include a complete nutritional information panel.",
     "FDA 21 CFR 101.9", RuleCriticality.CRITICAL, None),
    (Category.COSMETICS_PERSONAL_CARE, Marketplace.US, "FDA ingredient list required",
     "All cosmetic ingredients must be listed in descending order of predominance.",
     "FDA 21 CFR 701.3", RuleCriticality.CRITICAL, "Ingredients: Water, Glycerin, Cetyl Alcohol..."),
    (Category.COSMETICS_PERSONAL_CARE, Marketplace.US, "Net weight declaration required",
     "Package must show net weight or volume in both metric and US customary units.",
     "FDA 21 CFR 701.13", RuleCriticality.CRITICAL, "Net Wt. 1.7 oz (50g)"),
    (Category.TOYS, Marketplace.UK, "UKCA marking required",
     "Products must bear the UKCA mark for the UK market.",
     "Toys (Safety) Regulations 2011", RuleCriticality.CRITICAL, "UKCA mark visible on product"),
    (Category.TOYS, Marketplace.UK, "Age appropriate warnings in English",
     "All safety warnings must be clearly displayed in English.",
     "UK Toys (Safety) Regulations", RuleCriticality.CRITICAL, None),
    (Category.TOYS, Marketplace.DE, "CE marking required",
     "Products must bear the CE mark for EU market compliance.",
     "EN 71 European Toy Safety Standard", RuleCriticality.CRITICAL, "CE mark visible on product"),
    (Category.TOYS, Marketplace.DE, "German language warnings required",
     "All safety warnings must be provided in German.",
     "ProdSG - German Product Safety Act", RuleCriticality.CRITICAL,
     "ACHTUNG: Nicht für Kinder unter 36 Monaten geeignet"),
]


def get_user_by_email(db: Session, email: str):
    return db.query(User).filter(User.email == email).first()


def ensure_user(db: Session, email: str, name: str, password: str, role: UserRole = UserRole.USER) -> User:
    user = get_user_by_email(db, email)
    if user:
        logger.info(f"User {email} already exists")
        return user
    user = User(
        email=email,
        name=name,
        hashed_password=get_password_hash(password),
        role=role,
        is_active=True,
        email_verified_at=datetime.utcnow(),
    )
    db.add(user)
    db.flush()
    print(f"Created user {email} (password: {password})")
    return user


def ensure_account(db: Session, owner: User, name: str, plan: Plan) -> Account:
    if owner.owned_account is not None:
        return owner.owned_account
    account = create_account_for_user(db, owner, name=name, plan=plan)
    account.subscription_status = SubscriptionStatus.ACTIVE if plan != Plan.ONE_TIME else SubscriptionStatus.INACTIVE
    db.flush()
    return account


def ensure_member(db: Session, account: Account, user: User, role: AccountRole, permissions, invited_by: User):
    existing = (
        db.query(AccountMember)
        .filter(AccountMember.account_id == account.id, AccountMember.user_id == user.id)
        .first()
    )
    if existing:
        return existing
    member = AccountMember(
        account_id=account.id,
        user_id=user.id,
        role=role,
        permissions=[p.value for p in permissions],
        invited_by=invited_by.id,
        is_active=True,
    )
    db.add(member)
    return member


def seed_rules(db: Session) -> int:
    created = 0
    for category, marketplace, requirement, description, regulation, criticality, example in DEMO_RULES:
        exists = (
            db.query(RegulatoryRule)
            .filter(
                RegulatoryRule.category == category,
                RegulatoryRule.marketplace == marketplace,
                RegulatoryRule.requirement == requirement,
            )
            .first()
        )
        if exists:
            continue
        db.add(RegulatoryRule(
            category=category,
            marketplace=marketplace,
            requirement=requirement,
            description=description,
            regulation=regulation,
            criticality=criticality,
            example=example,
            is_active=True,
        ))
        created += 1
    return created


def init_db():
    """Create tables and seed the admin, demo accounts and regulatory rules"""

    # Create all tables
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")

    db = SessionLocal()

    try:
        ensure_user(db, ADMIN_EMAIL, "Platform Admin", ADMIN_PASSWORD, role=UserRole.ADMIN)

        free_user = ensure_user(db, "free@example.com", "Free User", DEMO_PASSWORD)
        ensure_account(db, free_user, "Free Workspace", Plan.FREE)

        one_time_user = ensure_user(db, "onetime@example.com", "One-Time User", DEMO_PASSWORD)
        ensure_account(db, one_time_user, "One-Time Workspace", Plan.ONE_TIME)

        deluxe_user = ensure_user(db, "deluxe@example.com", "Deluxe User", DEMO_PASSWORD)
        deluxe_account = ensure_account(db, deluxe_user, "Deluxe Workspace", Plan.DELUXE)

        editor = ensure_user(db, "editor@example.com", "Editor Member", DEMO_PASSWORD)
        ensure_member(
            db, deluxe_account, editor, AccountRole.EDITOR,
            [AccountPermission.SCAN_CREATE, AccountPermission.SCAN_VIEW, AccountPermission.SCAN_EDIT],
            deluxe_user,
        )

        viewer = ensure_user(db, "viewer@example.com", "Viewer Member", DEMO_PASSWORD)
        ensure_member(db, deluxe_account, viewer, AccountRole.VIEWER, [AccountPermission.SCAN_VIEW], deluxe_user)

        pending_email = "pending-editor@example.com"
        if not db.query(AccountInvite).filter(AccountInvite.email == pending_email).first():
            db.add(AccountInvite(
                account_id=deluxe_account.id,
                email=pending_email,
                role=AccountRole.EDITOR,
                permissions=[AccountPermission.SCAN_CREATE.value, AccountPermission.SCAN_VIEW.value],
                token=str(uuid.uuid4()),
                invited_by=deluxe_user.id,
                expires_at=datetime.utcnow() + timedelta(days=7),
            ))
            print(f"Created pending invitation for {pending_email}")

        created = seed_rules(db)
        print(f"Seeded {created} regulatory rules")

        if not db.query(SystemSettings).filter(SystemSettings.id == SYSTEM_SETTINGS_ID).first():
            db.add(SystemSettings(id=SYSTEM_SETTINGS_ID, master_prompt=DEFAULT_PROMPT))
            print("Created default system settings")

        db.commit()

    except Exception as e:
        logger.error(f"Error seeding database: {e}")
        db.rollback()
        raise
    finally:
        db.close()

    logger.info("Database initialization complete")

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
