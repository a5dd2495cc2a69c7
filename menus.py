"""
Menu catalog, per-portfolio menu sets and the template/block merge.

PlatformMenu documents form the global catalog; PortfolioMenu documents
instantiate it per tenant (draft `visible`/`order`, public
`published_visible`/`published_order`). `MenuComposer` decides once per menu
whether it renders through its template (structured content) or through its
ordered UI blocks.

Blocks are soft-hidden: a block whose `component_key` is no longer listed in
its menu's `component_keys` stays in storage and is simply not rendered.
Re-listing the key brings it back with its data.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from database import create_document, dump_json_list, now_utc, oid, parse_json_list, update_document
from errors import InvalidRequestError, MisconfiguredPlatformError, NotFoundError
from schemas import MenuBlock, PlatformMenu, PortfolioMenu

logger = logging.getLogger("portfolio_api.menus")

# Main section menus, in seed order. Their block composition is locked.
DEFAULT_MENU_COMPONENT_KEYS: Dict[str, List[str]] = {
    "skills": ["title", "pill_list"],
    "projects": ["title", "card_grid"],
    "experience": ["title", "timeline"],
    "about": ["title", "rich_text"],
    "architecture": ["title", "pillar_card"],
    "contact": ["contact_block"],
}
PROTECTED_MENU_KEYS = frozenset(DEFAULT_MENU_COMPONENT_KEYS)

UI_COMPONENT_KEYS = (
    "title",
    "subtitle",
    "rich_text",
    "pill_list",
    "card_grid",
    "timeline",
    "pillar_card",
    "contact_block",
    "file_link",
)

SECTION_TEMPLATES = (
    "skills_template",
    "projects_template",
    "experience_template",
    "about_template",
    "architecture_template",
    "contact_template",
)

KEY_REGEX = re.compile(r"^[a-z0-9_-]+$")
MENU_KEY_MAX = 40
MENU_LABEL_MAX = 40

# hidden blocks are parked after every listed key
HIDDEN_ORDER_OFFSET = 20000


def to_section_template(value: Optional[str]) -> Optional[str]:
    """Normalize "skills" / "skills_template" to "skills_template"; unknown -> None."""
    if not value:
        return None
    if value in SECTION_TEMPLATES:
        return value
    candidate = f"{re.sub(r'_template$', '', value)}_template"
    return candidate if candidate in SECTION_TEMPLATES else None


def template_family(template: str) -> str:
    return template[: -len("_template")]


# ======================
# Read models
# ======================

class MenuDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    key: str
    label: str
    order: int = 0
    enabled: bool = True
    section_type: Optional[str] = None
    component_keys: Tuple[str, ...] = ()

    @property
    def is_protected(self) -> bool:
        return self.key in PROTECTED_MENU_KEYS

    @classmethod
    def from_document(cls, doc: dict) -> "MenuDefinition":
        keys = [k for k in parse_json_list(doc.get("component_keys")) if isinstance(k, str)]
        return cls(
            id=str(doc["_id"]),
            key=doc["key"],
            label=doc.get("label") or doc["key"],
            order=int(doc.get("order") or 0),
            enabled=bool(doc.get("enabled", True)),
            section_type=doc.get("section_type"),
            component_keys=tuple(keys),
        )

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "label": self.label,
            "order": self.order,
            "enabled": self.enabled,
            "section_type": self.section_type,
            "component_keys": list(self.component_keys),
            "is_protected": self.is_protected,
        }


class PortfolioMenuEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    portfolio_id: str
    platform_menu_id: str
    platform_menu_key: str
    visible: bool = True
    order: int = 0
    published_visible: bool = True
    published_order: int = 0
    section_type: Optional[str] = None

    @classmethod
    def from_document(cls, doc: dict) -> "PortfolioMenuEntry":
        return cls(
            id=str(doc["_id"]),
            portfolio_id=doc["portfolio_id"],
            platform_menu_id=doc["platform_menu_id"],
            platform_menu_key=doc["platform_menu_key"],
            visible=bool(doc.get("visible", True)),
            order=int(doc.get("order") or 0),
            published_visible=bool(doc.get("published_visible", True)),
            published_order=int(doc.get("published_order") or 0),
            section_type=doc.get("section_type"),
        )

    def template(self, definition: MenuDefinition) -> Optional[str]:
        raw = self.section_type or definition.section_type
        if not raw and definition.is_protected:
            raw = definition.key
        return to_section_template(raw)


class MenuCatalog:
    """The platform-wide menu registry."""

    def __init__(self, definitions: Iterable[MenuDefinition]):
        self._by_key: Dict[str, MenuDefinition] = {}
        self._by_id: Dict[str, MenuDefinition] = {}
        for d in definitions:
            self._by_key[d.key] = d
            self._by_id[d.id] = d

    @classmethod
    def load(cls, db) -> "MenuCatalog":
        return cls(MenuDefinition.from_document(doc) for doc in db["platformmenu"].find())

    def all(self) -> List[MenuDefinition]:
        return sorted(self._by_key.values(), key=lambda d: (d.order, d.key))

    def get(self, key: str) -> Optional[MenuDefinition]:
        return self._by_key.get(key)

    def by_id(self, menu_id: str) -> Optional[MenuDefinition]:
        return self._by_id.get(str(menu_id))

    def require_protected(self, key: str) -> MenuDefinition:
        definition = self._by_key.get(key)
        if definition is None:
            raise MisconfiguredPlatformError(f'Platform menu "{key}" is missing; run the menu seed')
        if not definition.enabled:
            raise MisconfiguredPlatformError(f'Platform menu "{key}" is disabled')
        return definition

    def menu_for_template(self, template: str, menu_key: Optional[str] = None) -> MenuDefinition:
        """
        Menu a dedicated editor writes to. Defaults to the protected menu of the
        template's family; `menu_key` selects another instance of the same template.
        """
        if menu_key is None:
            return self.require_protected(template_family(template))
        definition = self._by_key.get(menu_key)
        if definition is None:
            raise NotFoundError("Menu not found")
        raw = definition.section_type or (definition.key if definition.is_protected else None)
        if to_section_template(raw) != template:
            raise InvalidRequestError(f'Menu "{menu_key}" does not use {template}')
        return definition


class PortfolioMenuSet:
    """One portfolio's menu entries."""

    def __init__(self, portfolio_id: str, entries: Iterable[PortfolioMenuEntry]):
        self.portfolio_id = portfolio_id
        self.entries: List[PortfolioMenuEntry] = list(entries)

    @classmethod
    def load(cls, db, portfolio_id: str) -> "PortfolioMenuSet":
        docs = db["portfoliomenu"].find({"portfolio_id": portfolio_id})
        return cls(portfolio_id, (PortfolioMenuEntry.from_document(d) for d in docs))

    def in_published_order(self) -> List[PortfolioMenuEntry]:
        return sorted(self.entries, key=lambda e: e.published_order)

    def public_entries(self) -> List[PortfolioMenuEntry]:
        return [e for e in self.in_published_order() if e.published_visible]

    def draft_entries(self) -> List[PortfolioMenuEntry]:
        return sorted(self.entries, key=lambda e: e.order)

    def entry_for(self, key: str) -> Optional[PortfolioMenuEntry]:
        for e in self.entries:
            if e.platform_menu_key == key:
                return e
        return None


# ======================
# Template vs. blocks
# ======================

class TemplateSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    template: str
    payload: dict


class BlockSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    blocks: List[dict] = Field(default_factory=list)


MenuResolution = Union[TemplateSection, BlockSection]


def active_blocks(component_keys: Sequence[str], blocks: Iterable[dict]) -> List[dict]:
    """Blocks whose key is listed, ordered by the key's position in the list."""
    positions: Dict[str, int] = {}
    for i, key in enumerate(component_keys):
        positions.setdefault(key, i)
    kept = [b for b in blocks if b.get("component_key") in positions]
    return sorted(kept, key=lambda b: (positions[b["component_key"]], b.get("order", 0)))


def hidden_blocks(component_keys: Sequence[str], blocks: Iterable[dict]) -> List[dict]:
    listed = set(component_keys)
    return [b for b in blocks if b.get("component_key") not in listed]


def block_has_data(block: dict) -> bool:
    # blocks are created empty alongside their menu; those render nothing
    return any(v not in (None, "", [], {}) for v in (block.get("data") or {}).values())


class MenuComposer:
    """
    Resolves each menu to a `TemplateSection` or a `BlockSection`.

    When the template-backed family has content, the template wins even if the
    menu also lists UI blocks; structured data is never shadowed by blocks.
    """

    def __init__(self, presence):
        self.presence = presence

    def resolve(self, definition: MenuDefinition, entry: PortfolioMenuEntry) -> Optional[MenuResolution]:
        template = entry.template(definition)
        if template:
            payload = self.presence.template_payload(template, definition.id)
            if payload is not None:
                return TemplateSection(template=template, payload=payload)
        if definition.component_keys:
            blocks = [
                b for b in active_blocks(definition.component_keys, self.presence.blocks_for(definition.id))
                if block_has_data(b)
            ]
            if blocks:
                return BlockSection(blocks=blocks)
        return None


# ======================
# Validation
# ======================

def validate_menu_key(key: str) -> str:
    k = (key or "").strip()
    if not k:
        raise InvalidRequestError("Menu key is required")
    if len(k) > MENU_KEY_MAX:
        raise InvalidRequestError(f"Key must be {MENU_KEY_MAX} characters or less")
    if re.search(r"\s", k):
        raise InvalidRequestError("Key cannot contain spaces")
    if k != k.lower():
        raise InvalidRequestError("Key must be lowercase")
    if not KEY_REGEX.match(k):
        raise InvalidRequestError("Key must be lowercase letters, numbers, hyphens, or underscores only")
    return k


def validate_label(label: str) -> str:
    value = (label or "").strip()
    if not value:
        raise InvalidRequestError("Label is required")
    if len(value) > MENU_LABEL_MAX:
        raise InvalidRequestError(f"Label must be {MENU_LABEL_MAX} characters or less")
    return value


def validate_component_keys(keys: Optional[List[str]]) -> List[str]:
    if not keys or not all(isinstance(k, str) and k in UI_COMPONENT_KEYS for k in keys):
        raise InvalidRequestError("At least one valid UI component is required")
    if len(set(keys)) != len(keys):
        raise InvalidRequestError("Duplicate UI components are not allowed")
    return list(keys)


# ======================
# Catalog persistence
# ======================

def _next_entry_order(db, portfolio_id: str) -> int:
    orders = [d.get("order", 0) for d in db["portfoliomenu"].find({"portfolio_id": portfolio_id})]
    return max(orders) + 1 if orders else 0


def _create_entry(db, portfolio_id: str, definition: MenuDefinition, visible: bool, order: int) -> str:
    entry = PortfolioMenu(
        portfolio_id=portfolio_id,
        platform_menu_id=definition.id,
        platform_menu_key=definition.key,
        visible=visible,
        order=order,
        published_visible=visible,
        published_order=order,
        section_type=to_section_template(definition.key) if definition.is_protected else None,
    )
    entry_id = create_document(db, "portfoliomenu", entry)
    for i, key in enumerate(definition.component_keys):
        block = MenuBlock(portfolio_id=portfolio_id, platform_menu_id=definition.id, component_key=key, order=i)
        create_document(db, "menublock", block)
    return entry_id


def ensure_portfolio_menus(db, portfolio_id: str) -> int:
    """
    Give a portfolio an entry for every enabled platform menu. Idempotent;
    returns how many entries were created. Fails loudly when a protected menu
    is missing from the catalog; a disabled one is skipped like any other.
    """
    catalog = MenuCatalog.load(db)
    for key in DEFAULT_MENU_COMPONENT_KEYS:
        if catalog.get(key) is None:
            raise MisconfiguredPlatformError(f'Platform menu "{key}" is missing; run the menu seed')
    existing = {d["platform_menu_id"] for d in db["portfoliomenu"].find({"portfolio_id": portfolio_id})}
    order = _next_entry_order(db, portfolio_id)
    created = 0
    for definition in catalog.all():
        if not definition.enabled or definition.id in existing:
            continue
        _create_entry(db, portfolio_id, definition, visible=True, order=order)
        order += 1
        created += 1
    return created


def get_platform_menu(db, menu_id: str) -> MenuDefinition:
    doc = db["platformmenu"].find_one({"_id": oid(menu_id)}) if oid(menu_id) else None
    if not doc:
        raise NotFoundError("Menu not found")
    return MenuDefinition.from_document(doc)


def create_platform_menu(
    db,
    key: str,
    label: str,
    component_keys: List[str],
    order: Optional[int] = None,
    enabled: bool = True,
    section_type: Optional[str] = None,
) -> MenuDefinition:
    key = validate_menu_key(key)
    label = validate_label(label)
    component_keys = validate_component_keys(component_keys)
    if section_type is not None and to_section_template(section_type) is None:
        raise InvalidRequestError(f"Unknown section template: {section_type}")
    if db["platformmenu"].find_one({"key": key}):
        raise InvalidRequestError(f'A menu with key "{key}" already exists')

    if order is None:
        orders = [d.get("order", 0) for d in db["platformmenu"].find()]
        order = max(orders) + 1 if orders else 0

    menu = PlatformMenu(
        key=key,
        label=label,
        order=order,
        enabled=enabled,
        section_type=to_section_template(section_type),
        component_keys=dump_json_list(component_keys),
    )
    menu_id = create_document(db, "platformmenu", menu)
    definition = get_platform_menu(db, menu_id)

    # existing tenants get the new menu hidden until they opt in
    for portfolio in db["portfolio"].find({}, {"_id": 1}):
        pid = str(portfolio["_id"])
        _create_entry(db, pid, definition, visible=False, order=_next_entry_order(db, pid))

    logger.info("Created platform menu %s (%s)", key, menu_id)
    return definition


def update_platform_menu(
    db,
    menu_id: str,
    label: Optional[str] = None,
    enabled: Optional[bool] = None,
    order: Optional[int] = None,
    component_keys: Optional[List[str]] = None,
) -> MenuDefinition:
    existing = get_platform_menu(db, menu_id)
    if existing.is_protected and component_keys is not None:
        raise InvalidRequestError(
            f'Cannot change UI components for the main menu "{existing.key}". This menu is protected.'
        )

    changes: dict = {}
    if label is not None:
        changes["label"] = validate_label(label)
    if enabled is not None:
        changes["enabled"] = enabled
    if order is not None:
        changes["order"] = order
    if component_keys is not None:
        changes["component_keys"] = dump_json_list(validate_component_keys(component_keys))

    if changes:
        update_document(db, "platformmenu", {"_id": oid(menu_id)}, changes)
    if component_keys is not None:
        sync_menu_blocks(db, existing.id, component_keys)

    logger.info("Updated platform menu %s: %s", existing.key, sorted(changes))
    return get_platform_menu(db, menu_id)


def sync_menu_blocks(db, platform_menu_id: str, component_keys: List[str]) -> None:
    """
    Merge every tenant's blocks with a new key list: listed keys get their
    position as order (missing ones are created empty), unlisted blocks are
    parked in the hidden range. Nothing is deleted.
    """
    for entry in db["portfoliomenu"].find({"platform_menu_id": platform_menu_id}):
        pid = entry["portfolio_id"]
        existing = sorted(
            db["menublock"].find({"portfolio_id": pid, "platform_menu_id": platform_menu_id}),
            key=lambda b: b.get("order", 0),
        )
        by_key: Dict[str, dict] = {}
        for block in existing:
            by_key.setdefault(block["component_key"], block)

        for i, key in enumerate(component_keys):
            block = by_key.pop(key, None)
            if block is not None:
                update_document(db, "menublock", {"_id": block["_id"]}, {"order": i})
            else:
                create_document(db, "menublock", MenuBlock(
                    portfolio_id=pid, platform_menu_id=platform_menu_id, component_key=key, order=i,
                ))

        listed_ids = {b["_id"] for b in existing if b["component_key"] in component_keys}
        parked = [b for b in existing if b["_id"] not in listed_ids]
        for n, block in enumerate(parked):
            update_document(db, "menublock", {"_id": block["_id"]}, {"order": HIDDEN_ORDER_OFFSET + n})


# ======================
# Operator recovery
# ======================

def _set_component_keys(db, definition: MenuDefinition, component_keys: List[str]) -> None:
    # recovery paths may touch protected menus; the editor lock does not apply
    update_document(db, "platformmenu", {"_id": oid(definition.id)}, {
        "component_keys": dump_json_list(component_keys),
    })
    sync_menu_blocks(db, definition.id, component_keys)


def recover_hidden_blocks(db) -> dict:
    """
    Re-list the key of every parked block so it renders again with its data.
    Run this first when content "disappeared" after a menu edit.
    """
    hidden: Dict[str, List[str]] = {}
    for block in db["menublock"].find({"order": {"$gte": HIDDEN_ORDER_OFFSET}}):
        keys = hidden.setdefault(block["platform_menu_id"], [])
        if block["component_key"] not in keys:
            keys.append(block["component_key"])
    if not hidden:
        return {"recovered": [], "none_found": True}

    catalog = MenuCatalog.load(db)
    recovered = []
    for menu_id, keys in hidden.items():
        definition = catalog.by_id(menu_id)
        if definition is None:
            continue
        current = list(definition.component_keys)
        restored = [k for k in keys if k not in current and k in UI_COMPONENT_KEYS]
        if not restored:
            continue
        _set_component_keys(db, definition, current + restored)
        recovered.append({"menu_key": definition.key, "keys_restored": restored})
        logger.info("Recovered hidden blocks on %s: %s", definition.key, restored)
    return {"recovered": recovered, "none_found": False}


def restore_default_components(db) -> dict:
    """
    Put each protected menu's default keys back, ahead of its current list.
    Keys that still have blocks stay listed so nothing gets parked.
    """
    catalog = MenuCatalog.load(db)
    updated: List[str] = []
    skipped: List[str] = []
    for key, defaults in DEFAULT_MENU_COMPONENT_KEYS.items():
        definition = catalog.get(key)
        if definition is None:
            skipped.append(key)
            continue
        current = list(definition.component_keys)
        missing = [k for k in defaults if k not in current]
        merged = missing + current
        for block_key in db["menublock"].distinct("component_key", {"platform_menu_id": definition.id}):
            if block_key not in merged and block_key in UI_COMPONENT_KEYS:
                merged.append(block_key)
        if len(merged) == len(current):
            skipped.append(key)
            continue
        _set_component_keys(db, definition, merged)
        updated.append(key)
    logger.info("Restored default components: updated=%s skipped=%s", updated, skipped)
    return {"updated": updated, "skipped": skipped}


CONTENT_COLLECTIONS = (
    "skillgroup",
    "experience",
    "project",
    "aboutcontent",
    "architecturecontent",
    "architecturepillar",
    "personinfo",
)


def delete_platform_menu(db, menu_id: str) -> None:
    definition = get_platform_menu(db, menu_id)
    if definition.is_protected:
        raise InvalidRequestError(f'Cannot delete the main menu "{definition.key}". This menu is protected.')
    for name in CONTENT_COLLECTIONS:
        if db[name].count_documents({"platform_menu_id": definition.id}):
            raise InvalidRequestError("Cannot delete a menu that still has section content")
    db["menublock"].delete_many({"platform_menu_id": definition.id})
    db["portfoliomenu"].delete_many({"platform_menu_id": definition.id})
    db["platformmenu"].delete_one({"_id": oid(definition.id)})
    logger.info("Deleted platform menu %s", definition.key)


# ======================
# Tenant menu settings
# ======================

def set_entry_visibility(db, portfolio_id: str, entry_id: str, visible: bool) -> PortfolioMenuEntry:
    doc = db["portfoliomenu"].find_one({"_id": oid(entry_id), "portfolio_id": portfolio_id}) if oid(entry_id) else None
    if not doc:
        raise NotFoundError("Portfolio menu not found")
    definition = get_platform_menu(db, doc["platform_menu_id"])
    if visible and not definition.enabled:
        raise InvalidRequestError("This section is disabled by the platform and cannot be shown publicly")
    update_document(db, "portfoliomenu", {"_id": doc["_id"]}, {"visible": visible})
    return PortfolioMenuEntry.from_document({**doc, "visible": visible})


def reorder_entries(db, portfolio_id: str, entry_ids: List[str]) -> None:
    ids = [oid(e) for e in entry_ids]
    if any(i is None for i in ids) or len(set(ids)) != len(ids):
        raise InvalidRequestError("Invalid menu ids")
    docs = list(db["portfoliomenu"].find({"_id": {"$in": ids}, "portfolio_id": portfolio_id}))
    if len(docs) != len(ids):
        raise InvalidRequestError("Some menus not found or do not belong to this portfolio")
    catalog = MenuCatalog.load(db)
    for doc in docs:
        definition = catalog.by_id(doc["platform_menu_id"])
        if definition is None or not definition.enabled:
            raise InvalidRequestError("Cannot reorder menus that are disabled by the platform")
    for index, entry_id in enumerate(ids):
        update_document(db, "portfoliomenu", {"_id": entry_id}, {"order": index})


def publish_menu_configuration(db, portfolio_id: str) -> int:
    """Copy draft visibility/order to the published fields the public page reads."""
    entries = PortfolioMenuSet.load(db, portfolio_id).draft_entries()
    for index, entry in enumerate(entries):
        update_document(db, "portfoliomenu", {"_id": oid(entry.id)}, {
            "published_visible": entry.visible,
            "published_order": index,
            "published_at": now_utc(),
        })
    return len(entries)
