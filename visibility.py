"""
Section visibility.

A section is shown only when every layer agrees:

1. the portfolio is public and PUBLISHED (master switch),
2. the tenant toggle for the section is not explicitly off (unset means on),
3. the tenant's menu entry and the platform menu are both enabled,
4. the section has at least one visible item to show.

`evaluate_section` returns `Visible` or `Hidden(reason)` so callers can tell
which layer hid a section; `is_section_visible` collapses that to a bool.
"""
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from content import PortfolioContent, load_portfolio_content_sync
from database import oid
from menus import MenuCatalog, MenuComposer, PortfolioMenuSet
from schemas import STATUS_PUBLISHED

# menu key -> portfolio toggle field; custom menus have no toggle
SECTION_TOGGLES = {
    "skills": "show_skills",
    "projects": "show_projects",
    "experience": "show_experience",
    "about": "show_about",
    "architecture": "show_architecture",
    "contact": "show_contact",
}

HIDDEN_NOT_PUBLIC = "portfolio_not_public"
HIDDEN_NOT_PUBLISHED = "portfolio_not_published"
HIDDEN_TOGGLE_OFF = "toggle_off"
HIDDEN_MENU_DISABLED = "menu_disabled"
HIDDEN_PLATFORM_DISABLED = "platform_menu_disabled"
HIDDEN_NO_CONTENT = "no_content"


class Visible(BaseModel):
    model_config = ConfigDict(frozen=True)

    payload: Any = None


class Hidden(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str


SectionVisibility = Union[Visible, Hidden]


def toggle_allows(section_key: str, toggles: Optional[Mapping[str, Any]]) -> bool:
    """Only an explicit False hides a section; missing or None toggles leave it on."""
    field_name = SECTION_TOGGLES.get(section_key)
    if field_name is None or not toggles:
        return True
    return toggles.get(field_name) is not False


def evaluate_section(
    portfolio: Mapping[str, Any],
    section_key: str,
    entry_enabled: bool,
    definition_enabled: bool,
    has_content: bool,
    payload: Any = None,
) -> SectionVisibility:
    if not portfolio.get("is_public", False):
        return Hidden(reason=HIDDEN_NOT_PUBLIC)
    if portfolio.get("status") != STATUS_PUBLISHED:
        return Hidden(reason=HIDDEN_NOT_PUBLISHED)
    if not toggle_allows(section_key, portfolio):
        return Hidden(reason=HIDDEN_TOGGLE_OFF)
    if not definition_enabled:
        return Hidden(reason=HIDDEN_PLATFORM_DISABLED)
    if not entry_enabled:
        return Hidden(reason=HIDDEN_MENU_DISABLED)
    if not has_content:
        return Hidden(reason=HIDDEN_NO_CONTENT)
    return Visible(payload=payload)


class ContentPresence:
    """Answers "does this menu have anything visible?" over already-loaded content."""

    def __init__(self, content: PortfolioContent):
        self.content = content

    def skills(self, menu_id: str) -> Optional[dict]:
        groups = [g for g in self.content.skills.get(menu_id, []) if g.get("items")]
        return {"groups": groups} if groups else None

    def projects(self, menu_id: str) -> Optional[dict]:
        projects = self.content.projects.get(menu_id, [])
        return {"projects": projects} if projects else None

    def experience(self, menu_id: str) -> Optional[dict]:
        roles = self.content.experience.get(menu_id, [])
        return {"roles": roles} if roles else None

    def about(self, menu_id: str) -> Optional[dict]:
        about = self.content.about.get(menu_id)
        if not about or not about.get("paragraphs"):
            return None
        return about

    def architecture(self, menu_id: str) -> Optional[dict]:
        architecture = self.content.architecture.get(menu_id)
        if not architecture or not architecture.get("pillars"):
            return None
        return architecture

    def contact(self, menu_id: str) -> Optional[dict]:
        person = self.content.people.get(menu_id)
        if not person:
            return None
        payload = contact_payload(person)
        if not (payload["emails"] or payload["phones"] or payload["whatsapp"] or payload["contact_message"]):
            return None
        return payload

    def template_payload(self, template: str, menu_id: str) -> Optional[dict]:
        family = template[: -len("_template")]
        reader = getattr(self, family, None)
        return reader(menu_id) if reader else None

    def blocks_for(self, menu_id: str) -> List[dict]:
        return self.content.blocks.get(menu_id, [])


def contact_payload(person: Mapping[str, Any]) -> dict:
    """Only channels that are both filled in and switched on."""
    emails = [v for v, shown in (
        (person.get("email"), person.get("show_email")),
        (person.get("email2"), person.get("show_email2")),
    ) if v and shown]
    phones = [v for v, shown in (
        (person.get("phone"), person.get("show_phone")),
        (person.get("phone2"), person.get("show_phone2")),
    ) if v and shown]
    whatsapp = person.get("whatsapp") if person.get("show_whatsapp") else None
    return {
        "name": person.get("name"),
        "role": person.get("role"),
        "location": person.get("location"),
        "emails": emails,
        "phones": phones,
        "whatsapp": whatsapp or None,
        "linkedin": person.get("linkedin"),
        "cv_url": person.get("cv_url"),
        "contact_message": person.get("contact_message") or None,
    }


def is_section_visible(db, portfolio_id: str, section_key: str, toggles: Optional[Mapping[str, Any]] = None) -> bool:
    """
    Storage-backed check for one section of one portfolio. `toggles`, when
    given, replaces the portfolio's stored toggles.
    """
    pid_oid = oid(portfolio_id)
    portfolio = db["portfolio"].find_one({"_id": pid_oid}) if pid_oid else None
    if not portfolio:
        return False
    if toggles is not None:
        portfolio = {**portfolio, **{k: v for k, v in toggles.items() if k in SECTION_TOGGLES.values()}}

    catalog = MenuCatalog.load(db)
    definition = catalog.get(section_key)
    entry = PortfolioMenuSet.load(db, str(portfolio["_id"])).entry_for(section_key)
    if definition is None or entry is None:
        return False

    content = load_portfolio_content_sync(db, str(portfolio["_id"]))
    resolution = MenuComposer(ContentPresence(content)).resolve(definition, entry)
    result = evaluate_section(
        portfolio,
        section_key,
        entry_enabled=entry.published_visible,
        definition_enabled=definition.enabled,
        has_content=resolution is not None,
    )
    return isinstance(result, Visible)


def has_section_data(db, portfolio_id: str, section_key: str) -> bool:
    """Whether the section's menu has visible content, ignoring every switch."""
    catalog = MenuCatalog.load(db)
    definition = catalog.get(section_key)
    entry = PortfolioMenuSet.load(db, portfolio_id).entry_for(section_key)
    if definition is None or entry is None:
        return False
    content = load_portfolio_content_sync(db, portfolio_id)
    return MenuComposer(ContentPresence(content)).resolve(definition, entry) is not None
