import asyncio

import pytest

from content import (
    PortfolioContent,
    create_item,
    create_skill_group,
    load_blocks,
    load_portfolio_content_sync,
    set_item_visibility,
    update_block_data,
    upsert_person,
)
from errors import NotFoundError, NotPublishedError
from menus import MenuCatalog, MenuDefinition, PortfolioMenuEntry, PortfolioMenuSet, create_platform_menu
from planner import build_public_page, find_portfolio_by_slug, plan_sections

LIVE = {"is_public": True, "status": "PUBLISHED"}


def _menus():
    catalog = MenuCatalog([
        MenuDefinition(id="m-skills", key="skills", label="Skills", order=0, component_keys=("title", "pill_list")),
        MenuDefinition(id="m-projects", key="projects", label="Projects", order=1, component_keys=("title", "card_grid")),
        MenuDefinition(id="m-talks", key="talks", label="Talks", order=2, component_keys=("title", "rich_text")),
    ])
    menu_set = PortfolioMenuSet("p1", [
        PortfolioMenuEntry(id="e1", portfolio_id="p1", platform_menu_id="m-skills", platform_menu_key="skills", published_order=1),
        PortfolioMenuEntry(id="e2", portfolio_id="p1", platform_menu_id="m-projects", platform_menu_key="projects", published_order=0),
        PortfolioMenuEntry(id="e3", portfolio_id="p1", platform_menu_id="m-talks", platform_menu_key="talks", published_order=2),
    ])
    return catalog, menu_set


def _content():
    return PortfolioContent(
        skills={"m-skills": [{"name": "Backend", "items": [{"name": "Python"}]}]},
        projects={"m-projects": [{"title": "API"}]},
        blocks={"m-talks": [
            {"id": "b2", "component_key": "rich_text", "order": 1, "data": {"content": "Notes"}},
            {"id": "b1", "component_key": "title", "order": 0, "data": {"text": "Talks"}},
        ]},
    )


def test_golden_plan():
    catalog, menu_set = _menus()
    plan = plan_sections(LIVE, catalog, menu_set, _content())
    assert [(s.section_key, s.mode, s.template) for s in plan] == [
        ("projects", "template", "projects_template"),
        ("skills", "template", "skills_template"),
        ("talks", "blocks", None),
    ]
    assert plan[2].payload == {"blocks": [
        {"id": "b1", "component_key": "title", "data": {"text": "Talks"}},
        {"id": "b2", "component_key": "rich_text", "data": {"content": "Notes"}},
    ]}


def test_plan_is_deterministic():
    catalog, menu_set = _menus()
    content = _content()
    first = [s.model_dump() for s in plan_sections(LIVE, catalog, menu_set, content)]
    second = [s.model_dump() for s in plan_sections(LIVE, catalog, menu_set, content)]
    assert first == second


@pytest.mark.parametrize("portfolio", [
    {"is_public": False, "status": "PUBLISHED"},
    {"is_public": True, "status": "DRAFT"},
])
def test_master_switch_empties_plan(portfolio):
    catalog, menu_set = _menus()
    assert plan_sections(portfolio, catalog, menu_set, _content()) == []


def test_toggle_off_drops_section():
    catalog, menu_set = _menus()
    plan = plan_sections({**LIVE, "show_skills": False}, catalog, menu_set, _content())
    assert "skills" not in [s.section_key for s in plan]


def test_section_without_content_is_skipped():
    catalog, menu_set = _menus()
    content = _content()
    content.projects = {}
    plan = plan_sections(LIVE, catalog, menu_set, content)
    assert [s.section_key for s in plan] == ["skills", "talks"]


def test_include_hidden_reports_reasons():
    catalog, menu_set = _menus()
    content = _content()
    content.projects = {}
    plan = plan_sections({**LIVE, "show_skills": False}, catalog, menu_set, content, include_hidden=True)
    assert [(s.section_key, s.mode, s.reason) for s in plan] == [
        ("projects", "none", "no_content"),
        ("skills", "none", "toggle_off"),
        ("talks", "blocks", None),
    ]


def test_orphan_entry_is_ignored():
    catalog, menu_set = _menus()
    menu_set.entries.append(PortfolioMenuEntry(
        id="e4", portfolio_id="p1", platform_menu_id="gone", platform_menu_key="gone", published_order=3,
    ))
    assert len(plan_sections(LIVE, catalog, menu_set, _content())) == 3


# ---- storage-backed ----

def test_find_portfolio_by_slug(db, tenant, publish):
    account, _ = tenant
    portfolio = db["portfolio"].find_one({"account_id": str(account["_id"])})

    with pytest.raises(NotPublishedError):
        find_portfolio_by_slug(db, portfolio["slug"])
    with pytest.raises(NotFoundError):
        find_portfolio_by_slug(db, "missing")

    publish(account["portfolio_id"], is_public=False)
    with pytest.raises(NotFoundError):
        find_portfolio_by_slug(db, portfolio["slug"])


def test_public_page_end_to_end(db, tenant, publish, catalog):
    account, _ = tenant
    pid = account["portfolio_id"]
    create_skill_group(db, pid, catalog.get("skills").id, "Backend", ["Python", "Go"])
    project = create_item(db, "project", pid, catalog.get("projects").id, {"title": "Billing"})
    hidden = create_item(db, "project", pid, catalog.get("projects").id, {"title": "Secret"})
    set_item_visibility(db, "projects", pid, hidden["id"], False)
    upsert_person(db, pid, catalog.get("contact").id, {"name": "Ada", "email": "ada@example.com", "show_email": True})
    portfolio = publish(pid)

    page = asyncio.run(build_public_page(db, portfolio["slug"]))

    assert [m["key"] for m in page["menus"]] == ["skills", "projects", "contact"]
    projects = page["sections"][1]["payload"]["projects"]
    assert [p["id"] for p in projects] == [project["id"]]
    assert page["person"]["name"] == "Ada"


def test_custom_menu_renders_blocks(db, tenant, publish):
    account, _ = tenant
    pid = account["portfolio_id"]
    definition = create_platform_menu(db, "talks", "Talks", ["title"])
    db["portfoliomenu"].update_one({"platform_menu_key": "talks"}, {"$set": {"published_visible": True}})
    block = load_blocks(db, pid)[definition.id][0]
    update_block_data(db, pid, block["id"], {"text": "Conference talks"})
    portfolio = publish(pid)

    content = load_portfolio_content_sync(db, pid)
    plan = plan_sections(portfolio, MenuCatalog.load(db), PortfolioMenuSet.load(db, pid), content)
    assert [(s.section_key, s.mode) for s in plan] == [("talks", "blocks")]
