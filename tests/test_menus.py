import pytest

from content import PortfolioContent, load_blocks, update_block_data
from errors import InvalidRequestError, MisconfiguredPlatformError, NotFoundError
from menus import (
    HIDDEN_ORDER_OFFSET,
    BlockSection,
    MenuCatalog,
    MenuComposer,
    MenuDefinition,
    PortfolioMenuEntry,
    PortfolioMenuSet,
    TemplateSection,
    active_blocks,
    create_platform_menu,
    delete_platform_menu,
    ensure_portfolio_menus,
    hidden_blocks,
    publish_menu_configuration,
    recover_hidden_blocks,
    reorder_entries,
    restore_default_components,
    set_entry_visibility,
    to_section_template,
    sync_menu_blocks,
    update_platform_menu,
    validate_component_keys,
    validate_menu_key,
)
from portfolios import create_account
from visibility import ContentPresence


@pytest.mark.parametrize("key", ["", "Has Space", "UPPER", "x" * 41, "dots.not.allowed"])
def test_invalid_menu_keys(key):
    with pytest.raises(InvalidRequestError):
        validate_menu_key(key)


def test_valid_menu_key_is_trimmed():
    assert validate_menu_key(" case-studies_2 ") == "case-studies_2"


def test_to_section_template():
    assert to_section_template("skills") == "skills_template"
    assert to_section_template("skills_template") == "skills_template"
    assert to_section_template("gallery") is None
    assert to_section_template(None) is None


def test_active_blocks_follow_key_order():
    blocks = [
        {"component_key": "title", "order": 0},
        {"component_key": "rich_text", "order": 1},
        {"component_key": "file_link", "order": 2},
    ]
    ordered = active_blocks(["rich_text", "title"], blocks)
    assert [b["component_key"] for b in ordered] == ["rich_text", "title"]
    assert [b["component_key"] for b in hidden_blocks(["rich_text", "title"], blocks)] == ["file_link"]


def test_template_takes_precedence_over_blocks():
    definition = MenuDefinition(id="m1", key="projects", label="Projects", component_keys=("title", "card_grid"))
    entry = PortfolioMenuEntry(id="e1", portfolio_id="p1", platform_menu_id="m1", platform_menu_key="projects")
    content = PortfolioContent(
        projects={"m1": [{"title": "API"}]},
        blocks={"m1": [{"component_key": "title", "data": {"text": "Work"}}]},
    )
    resolution = MenuComposer(ContentPresence(content)).resolve(definition, entry)
    assert isinstance(resolution, TemplateSection)
    assert resolution.template == "projects_template"


def test_blocks_render_when_template_is_empty():
    definition = MenuDefinition(id="m1", key="projects", label="Projects", component_keys=("title", "card_grid"))
    entry = PortfolioMenuEntry(id="e1", portfolio_id="p1", platform_menu_id="m1", platform_menu_key="projects")
    content = PortfolioContent(blocks={"m1": [
        {"component_key": "card_grid", "data": {}},
        {"component_key": "title", "data": {"text": "Work"}},
    ]})
    resolution = MenuComposer(ContentPresence(content)).resolve(definition, entry)
    assert isinstance(resolution, BlockSection)
    # empty blocks render nothing
    assert [b["component_key"] for b in resolution.blocks] == ["title"]


def test_catalog_requires_protected_menus(db):
    db["platformmenu"].delete_one({"key": "contact"})
    with pytest.raises(MisconfiguredPlatformError):
        MenuCatalog.load(db).require_protected("contact")
    with pytest.raises(MisconfiguredPlatformError):
        ensure_portfolio_menus(db, "p-new")


def test_menu_for_template(catalog):
    assert catalog.menu_for_template("skills_template").key == "skills"
    with pytest.raises(InvalidRequestError):
        catalog.menu_for_template("skills_template", "projects")
    with pytest.raises(NotFoundError):
        catalog.menu_for_template("skills_template", "nope")


def test_ensure_portfolio_menus_is_idempotent(db, tenant):
    account, _ = tenant
    pid = account["portfolio_id"]
    assert ensure_portfolio_menus(db, pid) == 0
    assert len(PortfolioMenuSet.load(db, pid).entries) == 6


def test_new_menu_reaches_existing_portfolios_hidden(db, tenant):
    account, _ = tenant
    pid = account["portfolio_id"]
    definition = create_platform_menu(db, "case-studies", "Case studies", ["title", "rich_text"])
    entry = PortfolioMenuSet.load(db, pid).entry_for("case-studies")
    assert entry is not None
    assert entry.visible is False
    assert {b["component_key"] for b in load_blocks(db, pid)[definition.id]} == {"title", "rich_text"}


def test_duplicate_menu_key_rejected(db):
    with pytest.raises(InvalidRequestError):
        create_platform_menu(db, "skills", "Skills again", ["title"])


def test_unknown_component_key_rejected(db):
    with pytest.raises(InvalidRequestError):
        create_platform_menu(db, "gallery", "Gallery", ["carousel"])


def test_protected_menu_composition_is_locked(db, catalog):
    skills = catalog.get("skills")
    with pytest.raises(InvalidRequestError, match="protected"):
        update_platform_menu(db, skills.id, component_keys=["title"])
    updated = update_platform_menu(db, skills.id, label="Toolbox", enabled=False)
    assert updated.label == "Toolbox"
    assert updated.enabled is False
    assert updated.component_keys == ("title", "pill_list")


def test_protected_menu_cannot_be_deleted(db, catalog):
    with pytest.raises(InvalidRequestError):
        delete_platform_menu(db, catalog.get("about").id)


def test_delete_custom_menu_removes_entries_and_blocks(db, tenant):
    account, _ = tenant
    pid = account["portfolio_id"]
    definition = create_platform_menu(db, "talks", "Talks", ["title"])
    delete_platform_menu(db, definition.id)
    assert PortfolioMenuSet.load(db, pid).entry_for("talks") is None
    assert db["menublock"].count_documents({"platform_menu_id": definition.id}) == 0


def test_soft_hide_round_trip(db, tenant):
    account, _ = tenant
    pid = account["portfolio_id"]
    definition = create_platform_menu(db, "talks", "Talks", ["title", "rich_text"])
    blocks = {b["component_key"]: b for b in load_blocks(db, pid)[definition.id]}
    update_block_data(db, pid, blocks["rich_text"]["id"], {"content": "Keynote notes"})

    update_platform_menu(db, definition.id, component_keys=["title"])
    stored = {b["component_key"]: b for b in load_blocks(db, pid)[definition.id]}
    assert stored["rich_text"]["data"] == {"content": "Keynote notes"}
    assert stored["rich_text"]["order"] >= HIDDEN_ORDER_OFFSET
    assert [b["component_key"] for b in active_blocks(["title"], stored.values())] == ["title"]

    update_platform_menu(db, definition.id, component_keys=["rich_text", "title"])
    restored = active_blocks(["rich_text", "title"], load_blocks(db, pid)[definition.id])
    assert [b["component_key"] for b in restored] == ["rich_text", "title"]
    assert restored[0]["data"] == {"content": "Keynote notes"}
    assert restored[0]["id"] == blocks["rich_text"]["id"]


def test_sync_creates_missing_blocks(db, tenant):
    account, _ = tenant
    pid = account["portfolio_id"]
    definition = create_platform_menu(db, "talks", "Talks", ["title"])
    update_platform_menu(db, definition.id, component_keys=["title", "file_link"])
    keys = [b["component_key"] for b in load_blocks(db, pid)[definition.id]]
    assert keys == ["title", "file_link"]


def test_duplicate_component_keys_rejected(db):
    with pytest.raises(InvalidRequestError, match="Duplicate"):
        validate_component_keys(["title", "rich_text", "title"])
    with pytest.raises(InvalidRequestError):
        create_platform_menu(db, "talks", "Talks", ["title", "title"])


def test_resync_keeps_block_count(db, tenant):
    definition = create_platform_menu(db, "talks", "Talks", ["title"])
    update_platform_menu(db, definition.id, component_keys=["title", "rich_text"])
    count = db["menublock"].count_documents({"platform_menu_id": definition.id})
    update_platform_menu(db, definition.id, component_keys=["title", "rich_text"])
    assert db["menublock"].count_documents({"platform_menu_id": definition.id}) == count == 2


def test_disabled_protected_menu_does_not_block_signup(db, catalog):
    update_platform_menu(db, catalog.get("architecture").id, enabled=False)
    account = create_account(db, "grace@example.com", "hash", "Grace")
    assert account["portfolio_id"]
    menu_set = PortfolioMenuSet.load(db, account["portfolio_id"])
    assert menu_set.entry_for("architecture") is None
    assert len(menu_set.entries) == 5


def test_recover_hidden_blocks(db, tenant):
    account, _ = tenant
    pid = account["portfolio_id"]
    definition = create_platform_menu(db, "talks", "Talks", ["title", "rich_text"])
    blocks = {b["component_key"]: b for b in load_blocks(db, pid)[definition.id]}
    update_block_data(db, pid, blocks["rich_text"]["id"], {"content": "Keynote notes"})
    update_platform_menu(db, definition.id, component_keys=["title"])

    result = recover_hidden_blocks(db)
    assert result == {"recovered": [{"menu_key": "talks", "keys_restored": ["rich_text"]}], "none_found": False}
    assert MenuCatalog.load(db).get("talks").component_keys == ("title", "rich_text")
    stored = {b["component_key"]: b for b in load_blocks(db, pid)[definition.id]}
    assert stored["rich_text"]["data"] == {"content": "Keynote notes"}
    assert stored["rich_text"]["order"] < HIDDEN_ORDER_OFFSET

    assert recover_hidden_blocks(db) == {"recovered": [], "none_found": True}


def test_recover_reaches_protected_menus(db, tenant, catalog):
    skills = catalog.get("skills")
    # simulate a composition change made before the lock existed
    db["platformmenu"].update_one({"key": "skills"}, {"$set": {"component_keys": '["title"]'}})
    sync_menu_blocks(db, skills.id, ["title"])

    recover_hidden_blocks(db)
    assert MenuCatalog.load(db).get("skills").component_keys == ("title", "pill_list")


def test_restore_default_components(db, tenant, catalog):
    db["platformmenu"].update_one({"key": "skills"}, {"$set": {"component_keys": '["pill_list"]'}})
    db["platformmenu"].update_one({"key": "about"}, {"$set": {"component_keys": '["rich_text"]'}})
    sync_menu_blocks(db, catalog.get("about").id, ["rich_text"])

    result = restore_default_components(db)
    assert result["updated"] == ["skills", "about"]
    assert result["skipped"] == ["projects", "experience", "architecture", "contact"]

    restored = MenuCatalog.load(db)
    assert restored.get("skills").component_keys == ("title", "pill_list")
    assert restored.get("about").component_keys == ("title", "rich_text")
    account, _ = tenant
    about_blocks = load_blocks(db, account["portfolio_id"])[catalog.get("about").id]
    assert all(b["order"] < HIDDEN_ORDER_OFFSET for b in about_blocks)

    assert restore_default_components(db)["updated"] == []


def test_restore_keeps_keys_that_still_have_blocks(db, tenant, catalog):
    contact = catalog.get("contact")
    db["platformmenu"].update_one({"key": "contact"}, {"$set": {"component_keys": '["contact_block", "file_link"]'}})
    sync_menu_blocks(db, contact.id, ["contact_block", "file_link"])
    db["platformmenu"].update_one({"key": "contact"}, {"$set": {"component_keys": '["contact_block"]'}})

    restore_default_components(db)
    assert MenuCatalog.load(db).get("contact").component_keys == ("contact_block", "file_link")


def test_platform_disabled_menu_cannot_be_shown(db, tenant, catalog):
    account, _ = tenant
    pid = account["portfolio_id"]
    update_platform_menu(db, catalog.get("about").id, enabled=False)
    entry = PortfolioMenuSet.load(db, pid).entry_for("about")
    with pytest.raises(InvalidRequestError):
        set_entry_visibility(db, pid, entry.id, True)
    assert set_entry_visibility(db, pid, entry.id, False).visible is False


def test_entry_of_another_portfolio_is_not_found(db, tenant, make_account):
    account, _ = tenant
    other, _ = make_account(email="bob@example.com", name="Bob")
    entry = PortfolioMenuSet.load(db, other["portfolio_id"]).entry_for("skills")
    with pytest.raises(NotFoundError):
        set_entry_visibility(db, account["portfolio_id"], entry.id, False)


def test_reorder_then_publish(db, tenant):
    account, _ = tenant
    pid = account["portfolio_id"]
    entries = PortfolioMenuSet.load(db, pid).draft_entries()
    reversed_ids = [e.id for e in reversed(entries)]
    reorder_entries(db, pid, reversed_ids)

    menu_set = PortfolioMenuSet.load(db, pid)
    assert [e.id for e in menu_set.draft_entries()] == reversed_ids
    # public order only moves on publish
    assert [e.id for e in menu_set.in_published_order()] == [e.id for e in entries]

    assert publish_menu_configuration(db, pid) == len(entries)
    assert [e.id for e in PortfolioMenuSet.load(db, pid).in_published_order()] == reversed_ids


def test_reorder_rejects_foreign_ids(db, tenant, make_account):
    account, _ = tenant
    other, _ = make_account(email="bob@example.com", name="Bob")
    foreign = PortfolioMenuSet.load(db, other["portfolio_id"]).entries[0].id
    with pytest.raises(InvalidRequestError):
        reorder_entries(db, account["portfolio_id"], [foreign])
