"""
Bootstrap data: the protected platform menus and the first operator account.

Run once per environment (``python seed.py``); both steps are idempotent.
"""
import logging

from auth import hash_password
from config import ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_PASSWORD_HASH, LOG_LEVEL
from database import create_document, dump_json_list, get_db, get_documents
from menus import DEFAULT_MENU_COMPONENT_KEYS, ensure_portfolio_menus, to_section_template
from schemas import ROLE_OPERATOR, Account, PlatformMenu

logger = logging.getLogger("portfolio_api.seed")

DEFAULT_MENU_LABELS = {
    "skills": "Skills",
    "projects": "Projects",
    "experience": "Experience",
    "about": "About",
    "architecture": "Architecture",
    "contact": "Contact",
}


def seed_platform_menus(db) -> int:
    """Create missing protected menus, then give every portfolio its entries."""
    created = 0
    for order, (key, component_keys) in enumerate(DEFAULT_MENU_COMPONENT_KEYS.items()):
        if db["platformmenu"].find_one({"key": key}):
            continue
        create_document(db, "platformmenu", PlatformMenu(
            key=key,
            label=DEFAULT_MENU_LABELS[key],
            order=order,
            enabled=True,
            section_type=to_section_template(key),
            component_keys=dump_json_list(component_keys),
        ))
        created += 1
    if created:
        logger.info("Seeded %d platform menus", created)

    for portfolio in get_documents(db, "portfolio"):
        ensure_portfolio_menus(db, str(portfolio["_id"]))
    return created


def seed_operator(db) -> str:
    email = ADMIN_EMAIL.strip().lower()
    existing = db["account"].find_one({"email": email})
    if existing:
        return str(existing["_id"])
    # a precomputed hash wins over the plain password
    password_hash = ADMIN_PASSWORD_HASH or hash_password(ADMIN_PASSWORD)
    account_id = create_document(db, "account", Account(
        email=email,
        name="Platform Operator",
        password_hash=password_hash,
        role=ROLE_OPERATOR,
    ))
    logger.info("Seeded operator account %s", email)
    return account_id


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    database = get_db()
    seed_platform_menus(database)
    seed_operator(database)
