"""
Accounts and portfolio lifecycle: signup provisioning, master switch and
section toggles, the review workflow and onboarding progress.
"""
import logging
import re
from typing import Dict, List, Optional

from database import create_document, now_utc, oid, to_public, update_document
from errors import InvalidRequestError, NotFoundError
from menus import ensure_portfolio_menus
from schemas import (
    ROLE_REGULAR,
    STATUS_DRAFT,
    STATUS_PUBLISHED,
    STATUS_READY_FOR_REVIEW,
    STATUS_REJECTED,
    Account,
    Portfolio,
)
from visibility import SECTION_TOGGLES

logger = logging.getLogger("portfolio_api.portfolios")

ONBOARDING_FINAL_STEP = 6

INTRO_FIELDS = ("skills_intro", "projects_intro", "experience_intro", "architecture_intro")
SECTION_INTRO_MAX = 240

# contact has a default but no per-portfolio override
DEFAULT_SECTION_INTROS = {
    "skills": "An overview of the skills and tools used across professional projects.",
    "projects": "A selection of projects highlighting problem-solving and delivery experience.",
    "experience": "A summary of professional experience and roles over time.",
    "architecture": "An overview of the technical principles and architectural approach behind this work.",
    "contact": "Feel free to reach out for professional inquiries or collaboration opportunities.",
}


def serialize_account(doc: dict) -> dict:
    return {
        "id": str(doc.get("_id")),
        "email": doc.get("email"),
        "name": doc.get("name"),
        "role": doc.get("role"),
        "portfolio_id": doc.get("portfolio_id"),
        "onboarding_step": doc.get("onboarding_step", 0),
        "onboarding_completed": bool(doc.get("onboarding_completed", False)),
    }


def serialize_portfolio(doc: dict) -> dict:
    data = to_public(doc)
    data.pop("created_at", None)
    return data


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")
    return slug or "portfolio"


def _unique_slug(db, base: str) -> str:
    slug = base
    n = 2
    while db["portfolio"].find_one({"slug": slug}):
        slug = f"{base}-{n}"
        n += 1
    return slug


def create_account(db, email: str, password_hash: str, name: Optional[str] = None, role: str = ROLE_REGULAR) -> dict:
    email = email.strip().lower()
    if db["account"].find_one({"email": email}):
        raise InvalidRequestError("Email already registered")
    account_id = create_document(db, "account", Account(email=email, name=name, password_hash=password_hash, role=role))
    account = db["account"].find_one({"_id": oid(account_id)})
    if role == ROLE_REGULAR:
        portfolio_id = provision_portfolio(db, account_id, slugify(name or email.split("@")[0]))
        account["portfolio_id"] = portfolio_id
    return account


def provision_portfolio(db, account_id: str, slug: str) -> str:
    """Create the account's portfolio and its default menus, then link it to the account."""
    portfolio_id = create_document(db, "portfolio", Portfolio(account_id=account_id, slug=_unique_slug(db, slug)))
    # the seed menus must exist before any tenant can be provisioned
    ensure_portfolio_menus(db, portfolio_id)
    update_document(db, "account", {"_id": oid(account_id)}, {"portfolio_id": portfolio_id})
    logger.info("Provisioned portfolio %s for account %s", portfolio_id, account_id)
    return portfolio_id


def get_portfolio(db, portfolio_id: Optional[str]) -> Optional[dict]:
    if not portfolio_id or oid(portfolio_id) is None:
        return None
    return db["portfolio"].find_one({"_id": oid(portfolio_id)})


def require_portfolio(db, portfolio_id: str) -> dict:
    portfolio = get_portfolio(db, portfolio_id)
    if not portfolio:
        raise NotFoundError("Portfolio not found")
    return portfolio


def section_toggles(portfolio: dict) -> Dict[str, bool]:
    # unset toggles read as on
    return {f: portfolio.get(f) is not False for f in SECTION_TOGGLES.values()}


def update_section_toggles(db, portfolio_id: str, changes: Dict[str, Optional[bool]]) -> Dict[str, bool]:
    update = {k: v for k, v in changes.items() if v is not None and k in SECTION_TOGGLES.values()}
    if update:
        update_document(db, "portfolio", {"_id": oid(portfolio_id)}, update)
    return section_toggles(require_portfolio(db, portfolio_id))


def set_portfolio_public(db, portfolio_id: str, is_public: bool) -> dict:
    update_document(db, "portfolio", {"_id": oid(portfolio_id)}, {"is_public": is_public})
    return {"is_public": is_public}


def request_review(db, portfolio_id: str) -> dict:
    portfolio = require_portfolio(db, portfolio_id)
    if portfolio.get("status") not in (STATUS_DRAFT, STATUS_REJECTED):
        raise InvalidRequestError("Portfolio cannot be submitted for review in its current state")
    update_document(db, "portfolio", {"_id": portfolio["_id"]}, {"status": STATUS_READY_FOR_REVIEW})
    return {"status": STATUS_READY_FOR_REVIEW}


def approve_portfolio(db, portfolio_id: str) -> dict:
    portfolio = require_portfolio(db, portfolio_id)
    if portfolio.get("status") != STATUS_READY_FOR_REVIEW:
        raise InvalidRequestError("Portfolio is not pending review")
    update_document(db, "portfolio", {"_id": portfolio["_id"]}, {
        "status": STATUS_PUBLISHED,
        "rejection_reason": None,
        "approved_at": now_utc(),
    })
    logger.info("Approved portfolio %s", portfolio_id)
    return {"status": STATUS_PUBLISHED}


def reject_portfolio(db, portfolio_id: str, reason: str) -> dict:
    if not reason or not reason.strip():
        raise InvalidRequestError("Rejection reason is required")
    portfolio = require_portfolio(db, portfolio_id)
    if portfolio.get("status") != STATUS_READY_FOR_REVIEW:
        raise InvalidRequestError("Portfolio is not pending review")
    update_document(db, "portfolio", {"_id": portfolio["_id"]}, {
        "status": STATUS_REJECTED,
        "rejection_reason": reason.strip(),
    })
    logger.info("Rejected portfolio %s", portfolio_id)
    return {"status": STATUS_REJECTED, "rejection_reason": reason.strip()}


def pending_reviews(db) -> List[dict]:
    docs = db["portfolio"].find({"status": STATUS_READY_FOR_REVIEW})
    return [serialize_portfolio(d) for d in sorted(docs, key=lambda d: d.get("updated_at") or now_utc(), reverse=True)]


def list_accounts(db) -> List[dict]:
    docs = sorted(db["account"].find(), key=lambda d: d.get("created_at") or now_utc())
    return [serialize_account(d) for d in docs]


def list_portfolios(db) -> List[dict]:
    accounts = {str(a["_id"]): a for a in db["account"].find()}
    result = []
    for doc in sorted(db["portfolio"].find(), key=lambda d: d.get("created_at") or now_utc()):
        owner = accounts.get(doc.get("account_id"))
        result.append({
            "id": str(doc["_id"]),
            "slug": doc.get("slug"),
            "status": doc.get("status"),
            "is_public": doc.get("is_public", False),
            "account": serialize_account(owner) if owner else None,
        })
    return result


# ======================
# Onboarding
# ======================

def needs_onboarding(db, account: dict) -> bool:
    if account.get("role") != ROLE_REGULAR:
        return False
    if account.get("onboarding_completed") or account.get("onboarding_step") == ONBOARDING_FINAL_STEP:
        return False
    portfolio_id = account.get("portfolio_id")
    if not portfolio_id:
        return True
    has_person = db["personinfo"].count_documents({"portfolio_id": portfolio_id}) > 0
    has_hero = db["herocontent"].count_documents({"portfolio_id": portfolio_id}) > 0
    has_any_content = any(
        db[name].count_documents({"portfolio_id": portfolio_id}) > 0
        for name in ("skillgroup", "project", "experience", "aboutcontent", "architecturecontent")
    )
    return not has_person or not has_hero or not has_any_content


def set_onboarding_step(db, account_id: str, step: int) -> dict:
    if step < 0 or step > ONBOARDING_FINAL_STEP:
        raise InvalidRequestError(f"Onboarding step must be between 0 and {ONBOARDING_FINAL_STEP}")
    changes = {"onboarding_step": step}
    if step == ONBOARDING_FINAL_STEP:
        changes["onboarding_completed"] = True
    update_document(db, "account", {"_id": oid(account_id)}, changes)
    return serialize_account(db["account"].find_one({"_id": oid(account_id)}))


# ======================
# Section intros
# ======================

def section_intro(user_intro: Optional[str], section: str) -> Optional[str]:
    """The tenant's own text when it has any, else the platform default."""
    if user_intro and user_intro.strip():
        return user_intro.strip()
    return DEFAULT_SECTION_INTROS.get(section)


def get_intros(db, portfolio_id: Optional[str]) -> Optional[Dict[str, Optional[str]]]:
    portfolio = get_portfolio(db, portfolio_id)
    if portfolio is None:
        return None
    return {f: portfolio.get(f) for f in INTRO_FIELDS}


def update_intros(db, portfolio_id: str, changes: Dict[str, Optional[str]]) -> Dict[str, Optional[str]]:
    """Only fields present in `changes` are written; blank text clears back to the default."""
    update = {}
    for field, value in changes.items():
        if field not in INTRO_FIELDS:
            continue
        text = (value or "").strip() or None
        if text and len(text) > SECTION_INTRO_MAX:
            raise InvalidRequestError(f"Section intro must be {SECTION_INTRO_MAX} characters or less")
        update[field] = text
    require_portfolio(db, portfolio_id)
    if update:
        update_document(db, "portfolio", {"_id": oid(portfolio_id)}, update)
    return get_intros(db, portfolio_id)
