"""
Default data seeder for Shop Auth

Creates, in this order:
- the default roles (ROLE_USER, ROLE_ADMIN)
- demo shopper accounts with ROLE_USER
- demo administrator accounts with ROLE_USER and ROLE_ADMIN

Roles must exist before any account that references them. Accounts whose
email is already taken are skipped, so the seeder can be re-run safely.

Run against the configured DATABASE_URL:
    python -m shop_auth.seed
"""
from typing import Callable, Dict, List

from sqlalchemy.orm import Session

from shop_auth.config import settings
from shop_auth.database import Base, SessionLocal, engine
from shop_auth.models.user import Role, User
from shop_auth.utils.logger import logger, setup_logging
from shop_auth.utils.passwords import hash_password

DEFAULT_ROLES = ["ROLE_USER", "ROLE_ADMIN"]

DEMO_PASSWORD = "Sh0pper!Demo"

DEMO_USERS = [
    {"first_name": f"fUser{i}", "last_name": f"lUser{i}", "email": f"email{i}@gmail.com"}
    for i in range(5)
]

DEMO_ADMINS = [
    {"first_name": f"admin{i}", "last_name": f"admin{i}", "email": f"admin{i}@gmail.com"}
    for i in range(2)
]


def seed_roles(db: Session, names: List[str] = DEFAULT_ROLES) -> Dict[str, Role]:
    """Create any missing roles and return all of them by name."""
    roles = {role.name: role for role in db.query(Role).filter(Role.name.in_(names)).all()}
    for name in names:
        if name not in roles:
            roles[name] = Role(name=name)
            db.add(roles[name])
            logger.info(f"Created default role: {name}", extra={"action": "seed"})
    db.flush()
    return roles


def seed_accounts(
    db: Session,
    accounts: List[Dict[str, str]],
    roles: List[Role],
    password: str = DEMO_PASSWORD,
    password_hasher: Callable[[str], str] = hash_password,
) -> int:
    """Create accounts that do not exist yet; returns how many were created."""
    created = 0
    for account in accounts:
        if db.query(User).filter(User.email == account["email"]).first():
            continue
        db.add(User(**account, password=password_hasher(password), roles=list(roles)))
        created += 1
        logger.info(f"Created default account: {account['email']}", extra={"action": "seed"})
    db.flush()
    return created


def seed_defaults(db: Session) -> int:
    roles = seed_roles(db)
    created = seed_accounts(db, DEMO_USERS, [roles["ROLE_USER"]])
    created += seed_accounts(db, DEMO_ADMINS, [roles["ROLE_USER"], roles["ROLE_ADMIN"]])
    db.commit()
    return created


def main():
    setup_logging(settings.LOG_LEVEL)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        created = seed_defaults(db)
    finally:
        db.close()

    logger.info(f"Default data initialization completed, {created} accounts created", extra={"action": "seed"})


if __name__ == "__main__":
    main()
