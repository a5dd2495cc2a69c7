"""
Content families: scoped reads for page rendering and the tenant editors'
writes.

Every query filters on `portfolio_id`. Public reads pass `visible_only=True`,
which drops items whose `is_visible` flag is off (and skill groups left with
no visible skill). Items come back sorted by their own `order`, ties kept in
storage order.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from database import create_document, dump_json_list, oid, parse_json_list, to_public, update_document
from errors import InvalidRequestError, NotFoundError
from schemas import (
    AboutContent,
    ArchitectureContent,
    ArchitecturePillar,
    Experience,
    HeroContent,
    PersonInfo,
    Project,
    Skill,
    SkillGroup,
)

logger = logging.getLogger("portfolio_api.content")

# family name in URLs -> collection
ITEM_COLLECTIONS = {
    "skill-groups": "skillgroup",
    "skills": "skill",
    "experience": "experience",
    "projects": "project",
    "architecture-pillars": "architecturepillar",
}

ITEM_SCHEMAS = {
    "experience": Experience,
    "project": Project,
    "architecturepillar": ArchitecturePillar,
}

BLOCK_TEXT_LIMITS = {
    "title": 80,
    "subtitle": 240,
    "rich_text": 5000,
    "description": 600,
    "url": 300,
    "message": 500,
    "item": 160,
}


def by_order(items: List[dict]) -> List[dict]:
    return sorted(items, key=lambda d: d.get("order", 0))


def _visible(doc: dict) -> bool:
    return doc.get("is_visible", True) is not False


def _group_by_menu(docs: List[dict]) -> Dict[str, List[dict]]:
    grouped: Dict[str, List[dict]] = defaultdict(list)
    for d in docs:
        grouped[d.get("platform_menu_id")].append(d)
    return dict(grouped)


# ======================
# Reads
# ======================

def load_skills(db, portfolio_id: str, visible_only: bool = True) -> Dict[str, List[dict]]:
    groups = list(db["skillgroup"].find({"portfolio_id": portfolio_id}))
    skills = list(db["skill"].find({"portfolio_id": portfolio_id}))
    items_by_group: Dict[str, List[dict]] = defaultdict(list)
    for s in by_order(skills):
        if visible_only and not _visible(s):
            continue
        items_by_group[s["skill_group_id"]].append(to_public(s))

    result: Dict[str, List[dict]] = defaultdict(list)
    for g in by_order(groups):
        if visible_only and not _visible(g):
            continue
        group = to_public(g)
        group["items"] = items_by_group.get(group["id"], [])
        if visible_only and not group["items"]:
            continue
        result[g["platform_menu_id"]].append(group)
    return dict(result)


def _load_items(db, collection: str, portfolio_id: str, visible_only: bool) -> Dict[str, List[dict]]:
    docs = by_order(list(db[collection].find({"portfolio_id": portfolio_id})))
    if visible_only:
        docs = [d for d in docs if _visible(d)]
    return _group_by_menu([to_public(d) for d in docs])


def load_experience(db, portfolio_id: str, visible_only: bool = True) -> Dict[str, List[dict]]:
    return _load_items(db, "experience", portfolio_id, visible_only)


def load_projects(db, portfolio_id: str, visible_only: bool = True) -> Dict[str, List[dict]]:
    return _load_items(db, "project", portfolio_id, visible_only)


def _about_public(doc: dict) -> dict:
    about = to_public(doc)
    about["paragraphs"] = [p for p in parse_json_list(doc.get("paragraphs")) if isinstance(p, str)]
    about["principles"] = by_order(list(doc.get("principles") or []))
    return about


def load_about(db, portfolio_id: str) -> Dict[str, dict]:
    return {d["platform_menu_id"]: _about_public(d) for d in db["aboutcontent"].find({"portfolio_id": portfolio_id})}


def load_architecture(db, portfolio_id: str, visible_only: bool = True) -> Dict[str, dict]:
    pillars = _load_items(db, "architecturepillar", portfolio_id, visible_only)
    result: Dict[str, dict] = {}
    for doc in db["architecturecontent"].find({"portfolio_id": portfolio_id}):
        content = to_public(doc)
        content["pillars"] = pillars.get(doc["platform_menu_id"], [])
        result[doc["platform_menu_id"]] = content
    for menu_id, items in pillars.items():
        # pillars may exist before the intro record is first saved
        result.setdefault(menu_id, {"title": None, "intro": None, "pillars": items})
    return result


def load_people(db, portfolio_id: str) -> Dict[str, dict]:
    return {d["platform_menu_id"]: to_public(d) for d in db["personinfo"].find({"portfolio_id": portfolio_id})}


def load_hero(db, portfolio_id: str) -> Optional[dict]:
    doc = db["herocontent"].find_one({"portfolio_id": portfolio_id})
    if not doc:
        return None
    hero = to_public(doc)
    hero["highlights"] = parse_json_list(doc.get("highlights"))
    return hero


def load_blocks(db, portfolio_id: str) -> Dict[str, List[dict]]:
    docs = by_order(list(db["menublock"].find({"portfolio_id": portfolio_id})))
    return _group_by_menu([to_public(d) for d in docs])


class PortfolioContent(BaseModel):
    """Everything a page render needs, keyed by platform_menu_id."""
    skills: Dict[str, List[dict]] = Field(default_factory=dict)
    experience: Dict[str, List[dict]] = Field(default_factory=dict)
    projects: Dict[str, List[dict]] = Field(default_factory=dict)
    about: Dict[str, dict] = Field(default_factory=dict)
    architecture: Dict[str, dict] = Field(default_factory=dict)
    people: Dict[str, dict] = Field(default_factory=dict)
    blocks: Dict[str, List[dict]] = Field(default_factory=dict)
    hero: Optional[dict] = None


async def load_portfolio_content(db, portfolio_id: str, visible_only: bool = True) -> PortfolioContent:
    """Fan out one read per family (pymongo is blocking) and wait for all of them."""
    skills, experience, projects, about, architecture, people, blocks, hero = await asyncio.gather(
        run_in_threadpool(load_skills, db, portfolio_id, visible_only),
        run_in_threadpool(load_experience, db, portfolio_id, visible_only),
        run_in_threadpool(load_projects, db, portfolio_id, visible_only),
        run_in_threadpool(load_about, db, portfolio_id),
        run_in_threadpool(load_architecture, db, portfolio_id, visible_only),
        run_in_threadpool(load_people, db, portfolio_id),
        run_in_threadpool(load_blocks, db, portfolio_id),
        run_in_threadpool(load_hero, db, portfolio_id),
    )
    return PortfolioContent(
        skills=skills,
        experience=experience,
        projects=projects,
        about=about,
        architecture=architecture,
        people=people,
        blocks=blocks,
        hero=hero,
    )


def load_portfolio_content_sync(db, portfolio_id: str, visible_only: bool = True) -> PortfolioContent:
    return PortfolioContent(
        skills=load_skills(db, portfolio_id, visible_only),
        experience=load_experience(db, portfolio_id, visible_only),
        projects=load_projects(db, portfolio_id, visible_only),
        about=load_about(db, portfolio_id),
        architecture=load_architecture(db, portfolio_id, visible_only),
        people=load_people(db, portfolio_id),
        blocks=load_blocks(db, portfolio_id),
        hero=load_hero(db, portfolio_id),
    )


# ======================
# Writes (callers have passed the write guards)
# ======================

def _next_order(db, collection: str, filter_dict: dict) -> int:
    orders = [d.get("order", 0) for d in db[collection].find(filter_dict)]
    return max(orders) + 1 if orders else 0


def _find_owned(db, collection: str, portfolio_id: str, item_id: str, label: str) -> dict:
    item_oid = oid(item_id)
    doc = db[collection].find_one({"_id": item_oid, "portfolio_id": portfolio_id}) if item_oid else None
    if not doc:
        raise NotFoundError(f"{label} not found")
    return doc


def upsert_hero(db, portfolio_id: str, headline: Optional[str], subheadline: Optional[str], highlights: List[str]) -> dict:
    changes = {"headline": headline, "subheadline": subheadline, "highlights": dump_json_list(highlights)}
    if not update_document(db, "herocontent", {"portfolio_id": portfolio_id}, changes):
        create_document(db, "herocontent", HeroContent(portfolio_id=portfolio_id, **changes))
    return load_hero(db, portfolio_id)


# --- skills ---

def create_skill_group(db, portfolio_id: str, platform_menu_id: str, name: str, skills: List[str]) -> dict:
    order = _next_order(db, "skillgroup", {"portfolio_id": portfolio_id, "platform_menu_id": platform_menu_id})
    group_id = create_document(db, "skillgroup", SkillGroup(
        portfolio_id=portfolio_id, platform_menu_id=platform_menu_id, name=name, order=order,
    ))
    replace_skills(db, portfolio_id, group_id, skills)
    return get_skill_group(db, portfolio_id, group_id)


def get_skill_group(db, portfolio_id: str, group_id: str) -> dict:
    group = to_public(_find_owned(db, "skillgroup", portfolio_id, group_id, "Skill group"))
    group["items"] = [to_public(s) for s in by_order(list(db["skill"].find({
        "portfolio_id": portfolio_id, "skill_group_id": group["id"],
    })))]
    return group


def replace_skills(db, portfolio_id: str, group_id: str, names: List[str]) -> None:
    """
    Delete then recreate a group's skills. Two writes, not one atomic unit.
    A name that was hidden before stays hidden.
    """
    _find_owned(db, "skillgroup", portfolio_id, group_id, "Skill group")
    owned = {"portfolio_id": portfolio_id, "skill_group_id": group_id}
    hidden = {s["name"] for s in db["skill"].find({**owned, "is_visible": False})}
    db["skill"].delete_many(owned)
    for i, name in enumerate(n.strip() for n in names):
        if name:
            create_document(db, "skill", Skill(
                portfolio_id=portfolio_id, skill_group_id=group_id, name=name, order=i, is_visible=name not in hidden,
            ))


def delete_skill_group(db, portfolio_id: str, group_id: str) -> None:
    doc = _find_owned(db, "skillgroup", portfolio_id, group_id, "Skill group")
    db["skill"].delete_many({"portfolio_id": portfolio_id, "skill_group_id": group_id})
    db["skillgroup"].delete_one({"_id": doc["_id"]})


# --- ordered items (experience, projects, architecture pillars) ---

def create_item(db, collection: str, portfolio_id: str, platform_menu_id: str, fields: Dict[str, Any]) -> dict:
    schema = ITEM_SCHEMAS[collection]
    order = fields.pop("order", None)
    if order is None:
        order = _next_order(db, collection, {"portfolio_id": portfolio_id, "platform_menu_id": platform_menu_id})
    item = schema(portfolio_id=portfolio_id, platform_menu_id=platform_menu_id, order=order, **fields)
    item_id = create_document(db, collection, item)
    return to_public(db[collection].find_one({"_id": oid(item_id)}))


def update_item(db, collection: str, portfolio_id: str, item_id: str, fields: Dict[str, Any]) -> dict:
    doc = _find_owned(db, collection, portfolio_id, item_id, "Item")
    protected = {"portfolio_id", "platform_menu_id", "skill_group_id", "_id", "id"}
    changes = {k: v for k, v in fields.items() if v is not None and k not in protected}
    if changes:
        update_document(db, collection, {"_id": doc["_id"]}, changes)
    return to_public(db[collection].find_one({"_id": doc["_id"]}))


def delete_item(db, collection: str, portfolio_id: str, item_id: str) -> None:
    doc = _find_owned(db, collection, portfolio_id, item_id, "Item")
    db[collection].delete_one({"_id": doc["_id"]})


def set_item_visibility(db, family: str, portfolio_id: str, item_id: str, is_visible: bool) -> dict:
    collection = ITEM_COLLECTIONS.get(family)
    if collection is None:
        raise NotFoundError(f"Unknown content family: {family}")
    doc = _find_owned(db, collection, portfolio_id, item_id, "Item")
    update_document(db, collection, {"_id": doc["_id"]}, {"is_visible": is_visible})
    return {"id": str(doc["_id"]), "is_visible": is_visible}


def list_items(db, collection: str, portfolio_id: str, platform_menu_id: str) -> List[dict]:
    docs = db[collection].find({"portfolio_id": portfolio_id, "platform_menu_id": platform_menu_id})
    return [to_public(d) for d in by_order(list(docs))]


# --- singletons per menu ---

def upsert_about(db, portfolio_id: str, platform_menu_id: str, title: Optional[str], paragraphs: List[str], principles: List[dict]) -> dict:
    changes = {
        "title": title,
        "paragraphs": dump_json_list(paragraphs),
        "principles": [{**p, "order": p.get("order", i)} for i, p in enumerate(principles)],
    }
    scope = {"portfolio_id": portfolio_id, "platform_menu_id": platform_menu_id}
    if not update_document(db, "aboutcontent", scope, changes):
        create_document(db, "aboutcontent", AboutContent(**scope, **changes))
    return _about_public(db["aboutcontent"].find_one(scope))


def upsert_architecture(db, portfolio_id: str, platform_menu_id: str, title: Optional[str], intro: Optional[str]) -> dict:
    scope = {"portfolio_id": portfolio_id, "platform_menu_id": platform_menu_id}
    changes = {"title": title, "intro": intro}
    if not update_document(db, "architecturecontent", scope, changes):
        create_document(db, "architecturecontent", ArchitectureContent(**scope, **changes))
    return load_architecture(db, portfolio_id, visible_only=False).get(platform_menu_id)


def upsert_person(db, portfolio_id: str, platform_menu_id: str, fields: Dict[str, Any]) -> dict:
    scope = {"portfolio_id": portfolio_id, "platform_menu_id": platform_menu_id}
    changes = {k: v for k, v in fields.items() if k not in ("portfolio_id", "platform_menu_id")}
    if not update_document(db, "personinfo", scope, changes):
        create_document(db, "personinfo", PersonInfo(**scope, **changes))
    return to_public(db["personinfo"].find_one(scope))


def get_singleton(db, collection: str, portfolio_id: str, platform_menu_id: str) -> Optional[dict]:
    doc = db[collection].find_one({"portfolio_id": portfolio_id, "platform_menu_id": platform_menu_id})
    if doc and collection == "aboutcontent":
        return _about_public(doc)
    return to_public(doc)


# --- menu blocks ---

def _check_length(value: Any, limit: int, label: str) -> None:
    if isinstance(value, str) and len(value) > limit:
        raise InvalidRequestError(f"{label} must be {limit} characters or less")


def validate_block_data(component_key: str, data: Dict[str, Any]) -> None:
    if component_key == "title":
        _check_length(data.get("text"), BLOCK_TEXT_LIMITS["title"], "Title")
    elif component_key == "subtitle":
        _check_length(data.get("text"), BLOCK_TEXT_LIMITS["subtitle"], "Subtitle")
    elif component_key == "rich_text":
        _check_length(data.get("content"), BLOCK_TEXT_LIMITS["rich_text"], "Rich text")
    elif component_key == "pillar_card":
        _check_length(data.get("title"), BLOCK_TEXT_LIMITS["title"], "Title")
        _check_length(data.get("description"), BLOCK_TEXT_LIMITS["description"], "Description")
    elif component_key == "file_link":
        _check_length(data.get("title"), BLOCK_TEXT_LIMITS["title"], "Title")
        _check_length(data.get("externalUrl"), BLOCK_TEXT_LIMITS["url"], "URL")
    elif component_key == "contact_block":
        _check_length(data.get("message"), BLOCK_TEXT_LIMITS["message"], "Message")
    items = data.get("items")
    if isinstance(items, list):
        for it in items:
            if isinstance(it, dict):
                _check_length(it.get("value"), BLOCK_TEXT_LIMITS["item"], "Each item")


def update_block_data(db, portfolio_id: str, block_id: str, data: Dict[str, Any]) -> dict:
    doc = _find_owned(db, "menublock", portfolio_id, block_id, "Block")
    validate_block_data(doc["component_key"], data)
    update_document(db, "menublock", {"_id": doc["_id"]}, {"data": data})
    return to_public(db["menublock"].find_one({"_id": doc["_id"]}))
