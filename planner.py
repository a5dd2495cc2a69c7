"""
Section render planning for the public portfolio page.

`plan_sections` is pure: given the portfolio document, the catalog, the
tenant's menu set and the loaded content it returns the same ordered list of
`RenderInstruction`s every time. `build_public_page` is the storage-facing
wrapper the route calls.
"""
import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel

from content import PortfolioContent, load_portfolio_content
from errors import NotFoundError, NotPublishedError
from menus import BlockSection, MenuCatalog, MenuComposer, PortfolioMenuSet, TemplateSection, template_family
from portfolios import DEFAULT_SECTION_INTROS, section_intro
from schemas import STATUS_PUBLISHED
from visibility import ContentPresence, Hidden, evaluate_section

logger = logging.getLogger("portfolio_api.planner")


class RenderInstruction(BaseModel):
    section_key: str
    label: str
    mode: Literal["template", "blocks", "none"]
    template: Optional[str] = None
    payload: Optional[Any] = None
    reason: Optional[str] = None


def plan_sections(
    portfolio: Dict[str, Any],
    catalog: MenuCatalog,
    menu_set: PortfolioMenuSet,
    content: PortfolioContent,
    include_hidden: bool = False,
) -> List[RenderInstruction]:
    composer = MenuComposer(ContentPresence(content))
    plan: List[RenderInstruction] = []

    for entry in menu_set.in_published_order():
        definition = catalog.by_id(entry.platform_menu_id)
        if definition is None:
            # entry left behind by a deleted platform menu
            continue

        resolution = composer.resolve(definition, entry)
        verdict = evaluate_section(
            portfolio,
            definition.key,
            entry_enabled=entry.published_visible,
            definition_enabled=definition.enabled,
            has_content=resolution is not None,
        )

        if isinstance(verdict, Hidden):
            if include_hidden:
                plan.append(RenderInstruction(
                    section_key=definition.key, label=definition.label, mode="none", reason=verdict.reason,
                ))
            continue

        if isinstance(resolution, TemplateSection):
            plan.append(RenderInstruction(
                section_key=definition.key,
                label=definition.label,
                mode="template",
                template=resolution.template,
                payload=_with_intro(portfolio, resolution),
            ))
        elif isinstance(resolution, BlockSection):
            plan.append(RenderInstruction(
                section_key=definition.key,
                label=definition.label,
                mode="blocks",
                payload={"blocks": [
                    {"id": b.get("id"), "component_key": b["component_key"], "data": b.get("data") or {}}
                    for b in resolution.blocks
                ]},
            ))
    return plan


def _with_intro(portfolio: Dict[str, Any], resolution: TemplateSection) -> dict:
    family = template_family(resolution.template)
    if family not in DEFAULT_SECTION_INTROS:
        return resolution.payload
    return {**resolution.payload, "intro": section_intro(portfolio.get(f"{family}_intro"), family)}


def find_portfolio_by_slug(db, slug: str) -> dict:
    """
    Unknown and non-public slugs are both plain "not found"; a visitor cannot
    tell a hidden portfolio from a missing one.
    """
    portfolio = db["portfolio"].find_one({"slug": slug})
    if not portfolio or not portfolio.get("is_public", False):
        raise NotFoundError("Portfolio not found")
    if portfolio.get("status") != STATUS_PUBLISHED:
        raise NotPublishedError(slug)
    return portfolio


async def build_public_page(db, slug: str) -> dict:
    portfolio = find_portfolio_by_slug(db, slug)
    portfolio_id = str(portfolio["_id"])

    content = await load_portfolio_content(db, portfolio_id, visible_only=True)
    catalog = MenuCatalog.load(db)
    menu_set = PortfolioMenuSet.load(db, portfolio_id)
    sections = plan_sections(portfolio, catalog, menu_set, content)
    logger.debug("Planned %d sections for %s", len(sections), slug)

    hero = content.hero or {}
    return {
        "slug": portfolio["slug"],
        "hero": {
            "headline": hero.get("headline") or "",
            "subheadline": hero.get("subheadline") or "",
            "highlights": hero.get("highlights") or [],
        },
        "person": _first_person(content, menu_set, catalog),
        "menus": [{"key": s.section_key, "label": s.label} for s in sections],
        "sections": [s.model_dump() for s in sections],
    }


def _first_person(content: PortfolioContent, menu_set: PortfolioMenuSet, catalog: MenuCatalog) -> Optional[dict]:
    """Name and role for the page header: the first contact record in menu order."""
    for entry in menu_set.public_entries():
        person = content.people.get(entry.platform_menu_id)
        if person and catalog.by_id(entry.platform_menu_id) is not None:
            return {
                "name": person.get("name"),
                "role": person.get("role"),
                "location": person.get("location"),
                "avatar_url": person.get("avatar_url"),
            }
    return None
