import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import content
import menus
import portfolios
from auth import (
    clear_impersonation_cookie,
    get_current_caller,
    get_operator,
    get_scope,
    hash_password,
    require_write_scope,
    set_impersonation_cookie,
    token_for_account,
    verify_password,
)
from config import LOG_LEVEL, PORT
from database import get_db, oid
from errors import InvalidRequestError, MisconfiguredPlatformError, NotFoundError, NotPublishedError, PortfolioError
from menus import MenuCatalog, PortfolioMenuSet, active_blocks, hidden_blocks
from planner import build_public_page, plan_sections
from scope import Caller, Scope, assert_within_scope
from visibility import has_section_data

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger("portfolio_api")

# ==================
# FastAPI app config
# ==================
app = FastAPI(title="Portfolio Site Builder API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PortfolioError)
def handle_portfolio_error(request: Request, exc: PortfolioError):
    if isinstance(exc, MisconfiguredPlatformError):
        logger.error("Platform misconfiguration on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# ============
# Request DTOs
# ============
class SignupRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=8)
    name: Optional[str] = Field(None, max_length=80)

class LoginRequest(BaseModel):
    email: str
    password: str

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class VisibilityUpdate(BaseModel):
    is_public: bool

class SectionTogglesUpdate(BaseModel):
    show_skills: Optional[bool] = None
    show_projects: Optional[bool] = None
    show_experience: Optional[bool] = None
    show_about: Optional[bool] = None
    show_architecture: Optional[bool] = None
    show_contact: Optional[bool] = None

class IntrosUpdate(BaseModel):
    skills_intro: Optional[str] = None
    projects_intro: Optional[str] = None
    experience_intro: Optional[str] = None
    architecture_intro: Optional[str] = None

class OnboardingUpdate(BaseModel):
    step: int

class MenuEntryUpdate(BaseModel):
    visible: bool

class MenuOrderUpdate(BaseModel):
    menu_ids: List[str]

class BlockUpdate(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)

class HeroUpdate(BaseModel):
    headline: Optional[str] = Field(None, max_length=100)
    subheadline: Optional[str] = Field(None, max_length=1000)
    highlights: List[str] = []

class SkillGroupCreate(BaseModel):
    name: str = Field(..., max_length=80)
    skills: List[str] = []

class SkillGroupUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=80)
    order: Optional[int] = None

class SkillsReplace(BaseModel):
    skills: List[str]

class ExperienceIn(BaseModel):
    title: Optional[str] = Field(None, max_length=80)
    company: Optional[str] = Field(None, max_length=80)
    location: Optional[str] = Field(None, max_length=80)
    period: Optional[str] = Field(None, max_length=80)
    bullets: Optional[List[str]] = None
    tech: Optional[List[str]] = None
    order: Optional[int] = None

class ProjectIn(BaseModel):
    title: Optional[str] = Field(None, max_length=80)
    summary: Optional[str] = Field(None, max_length=600)
    bullets: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    order: Optional[int] = None

class PillarIn(BaseModel):
    title: Optional[str] = Field(None, max_length=80)
    points: Optional[List[str]] = None
    order: Optional[int] = None

class PrincipleIn(BaseModel):
    title: str = Field(..., max_length=80)
    description: Optional[str] = Field(None, max_length=600)

class AboutUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=80)
    paragraphs: List[str] = []
    principles: List[PrincipleIn] = []

class ArchitectureUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=80)
    intro: Optional[str] = Field(None, max_length=600)

class ContactUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=80)
    role: Optional[str] = Field(None, max_length=80)
    location: Optional[str] = Field(None, max_length=80)
    email: Optional[str] = None
    email2: Optional[str] = None
    phone: Optional[str] = None
    phone2: Optional[str] = None
    whatsapp: Optional[str] = None
    linkedin: Optional[str] = Field(None, max_length=300)
    cv_url: Optional[str] = Field(None, max_length=300)
    avatar_url: Optional[str] = Field(None, max_length=300)
    contact_message: Optional[str] = Field(None, max_length=500)
    show_email: bool = True
    show_email2: bool = False
    show_phone: bool = True
    show_phone2: bool = False
    show_whatsapp: bool = False

class ItemVisibilityUpdate(BaseModel):
    is_visible: bool

class ImpersonationRequest(BaseModel):
    portfolio_id: str

class RejectRequest(BaseModel):
    reason: str

class PlatformMenuCreate(BaseModel):
    key: str
    label: str
    component_keys: List[str]
    order: Optional[int] = None
    enabled: bool = True
    section_type: Optional[str] = None

class PlatformMenuUpdate(BaseModel):
    label: Optional[str] = None
    enabled: Optional[bool] = None
    order: Optional[int] = None
    component_keys: Optional[List[str]] = None


# ======
# Health
# ======
@app.get("/")
def root():
    return {"status": "ok", "service": "portfolio-site-builder"}

@app.get("/test")
def test_database():
    status = {
        "backend": "running",
        "database": "not-available",
        "database_url": "set" if os.getenv("DATABASE_URL") else "not-set",
        "collections": [],
    }
    try:
        db = get_db()
        status["collections"] = db.list_collection_names()[:20]
        status["database"] = "connected"
    except Exception as e:
        status["database"] = f"error: {str(e)[:80]}"
    return status


# ===========
# Public page
# ===========
@app.get("/api/portfolios/{slug}")
async def get_public_portfolio(slug: str, db=Depends(get_db)):
    try:
        return await build_public_page(db, slug)
    except NotPublishedError as e:
        # friendly placeholder, not an error page
        return {"slug": e.slug, "status": "coming_soon", "sections": []}


# ====
# Auth
# ====
@app.post("/api/auth/signup")
def signup(payload: SignupRequest, db=Depends(get_db)):
    account = portfolios.create_account(db, payload.email, hash_password(payload.password), payload.name)
    return {"account": portfolios.serialize_account(account), "access_token": token_for_account(account)}

@app.post("/api/auth/login", response_model=Token)
def login(payload: LoginRequest, db=Depends(get_db)):
    account = db["account"].find_one({"email": payload.email.strip().lower()})
    if not account or not verify_password(payload.password, account.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return Token(access_token=token_for_account(account))

@app.post("/api/auth/logout")
def logout(response: Response):
    clear_impersonation_cookie(response)
    return {"ok": True}


# =====================
# Tenant admin: helpers
# =====================

def _catalog_menu(db, template: str, menu_key: Optional[str]):
    return MenuCatalog.load(db).menu_for_template(template, menu_key)


# ==========================
# Tenant admin: portfolio
# ==========================
@app.get("/api/admin/scope")
def get_admin_scope(caller: Caller = Depends(get_current_caller), scope: Scope = Depends(get_scope)):
    return {
        "account_id": caller.account_id,
        "role": caller.role,
        "portfolio_id": scope.portfolio_id,
        "is_impersonating": scope.is_impersonating,
        "read_only": scope.is_impersonating or caller.is_operator,
    }

@app.get("/api/admin/portfolio")
def get_admin_portfolio(scope: Scope = Depends(get_scope), db=Depends(get_db)):
    portfolio = portfolios.get_portfolio(db, scope.portfolio_id)
    return portfolios.serialize_portfolio(portfolio) if portfolio else None

@app.get("/api/admin/portfolio/visibility")
def get_portfolio_visibility(scope: Scope = Depends(get_scope), db=Depends(get_db)):
    portfolio = portfolios.get_portfolio(db, scope.portfolio_id)
    return {"is_public": bool(portfolio.get("is_public", False))} if portfolio else None

@app.put("/api/admin/portfolio/visibility")
def update_portfolio_visibility(payload: VisibilityUpdate, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    return portfolios.set_portfolio_public(db, portfolio_id, payload.is_public)

@app.get("/api/admin/portfolio/sections")
def get_section_toggles(scope: Scope = Depends(get_scope), db=Depends(get_db)):
    portfolio = portfolios.get_portfolio(db, scope.portfolio_id)
    return portfolios.section_toggles(portfolio) if portfolio else None

@app.put("/api/admin/portfolio/sections")
def update_section_toggles(payload: SectionTogglesUpdate, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    return portfolios.update_section_toggles(db, portfolio_id, payload.model_dump())

@app.get("/api/admin/portfolio/intros")
def get_section_intros(scope: Scope = Depends(get_scope), db=Depends(get_db)):
    return portfolios.get_intros(db, scope.portfolio_id)

@app.put("/api/admin/portfolio/intros")
def update_section_intros(payload: IntrosUpdate, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    # unset fields keep their value; an explicit null or blank clears back to the default
    return portfolios.update_intros(db, portfolio_id, payload.model_dump(exclude_unset=True))

@app.post("/api/admin/portfolio/review")
def submit_for_review(portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    return portfolios.request_review(db, portfolio_id)

@app.get("/api/admin/onboarding")
def get_onboarding(caller: Caller = Depends(get_current_caller), db=Depends(get_db)):
    account = db["account"].find_one({"_id": oid(caller.account_id)})
    return {
        "needs_onboarding": portfolios.needs_onboarding(db, account),
        "step": account.get("onboarding_step", 0),
    }

@app.put("/api/admin/onboarding")
def update_onboarding(
    payload: OnboardingUpdate,
    _: str = Depends(require_write_scope),
    caller: Caller = Depends(get_current_caller),
    db=Depends(get_db),
):
    return portfolios.set_onboarding_step(db, caller.account_id, payload.step)


# ======================
# Tenant admin: menus
# ======================
@app.get("/api/admin/menus")
def list_portfolio_menus(scope: Scope = Depends(get_scope), db=Depends(get_db)):
    if scope.portfolio_id is None:
        return []
    catalog = MenuCatalog.load(db)
    result = []
    for entry in PortfolioMenuSet.load(db, scope.portfolio_id).draft_entries():
        definition = catalog.by_id(entry.platform_menu_id)
        if definition is None:
            continue
        result.append({
            "id": entry.id,
            "key": definition.key,
            "label": definition.label,
            "visible": entry.visible,
            "order": entry.order,
            "published_visible": entry.published_visible,
            "published_order": entry.published_order,
            "platform_enabled": definition.enabled,
            "has_content": has_section_data(db, scope.portfolio_id, definition.key),
        })
    return result

@app.put("/api/admin/menus/{entry_id}")
def update_portfolio_menu(entry_id: str, payload: MenuEntryUpdate, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    entry = menus.set_entry_visibility(db, portfolio_id, entry_id, payload.visible)
    return {"id": entry.id, "visible": entry.visible}

@app.put("/api/admin/portfolios/{target_portfolio_id}/menus/order")
def reorder_portfolio_menus(
    target_portfolio_id: str,
    payload: MenuOrderUpdate,
    portfolio_id: str = Depends(require_write_scope),
    scope: Scope = Depends(get_scope),
    db=Depends(get_db),
):
    assert_within_scope(scope, target_portfolio_id)
    menus.reorder_entries(db, portfolio_id, payload.menu_ids)
    return {"ok": True}

@app.post("/api/admin/menus/publish")
def publish_menus(portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    return {"published": menus.publish_menu_configuration(db, portfolio_id)}

@app.get("/api/admin/menus/status")
async def menu_status(scope: Scope = Depends(get_scope), db=Depends(get_db)):
    portfolio = portfolios.get_portfolio(db, scope.portfolio_id)
    if not portfolio:
        return []
    page_content = await content.load_portfolio_content(db, scope.portfolio_id)
    plan = plan_sections(
        portfolio, MenuCatalog.load(db), PortfolioMenuSet.load(db, scope.portfolio_id), page_content, include_hidden=True,
    )
    return [{"section_key": s.section_key, "mode": s.mode, "reason": s.reason} for s in plan]

@app.get("/api/admin/menus/{menu_key}/blocks")
def list_menu_blocks(menu_key: str, scope: Scope = Depends(get_scope), db=Depends(get_db)):
    if scope.portfolio_id is None:
        return None
    definition = MenuCatalog.load(db).get(menu_key)
    if definition is None:
        raise NotFoundError("Menu not found")
    blocks = content.load_blocks(db, scope.portfolio_id).get(definition.id, [])
    return {
        "menu": definition.to_public(),
        "blocks": active_blocks(definition.component_keys, blocks),
        "hidden_blocks": hidden_blocks(definition.component_keys, blocks),
    }

@app.put("/api/admin/blocks/{block_id}")
def update_menu_block(block_id: str, payload: BlockUpdate, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    return content.update_block_data(db, portfolio_id, block_id, payload.data)


# ===========================
# Tenant admin: hero
# ===========================
@app.get("/api/admin/hero")
def get_hero(scope: Scope = Depends(get_scope), db=Depends(get_db)):
    if scope.portfolio_id is None:
        return None
    return content.load_hero(db, scope.portfolio_id)

@app.put("/api/admin/hero")
def update_hero(payload: HeroUpdate, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    return content.upsert_hero(db, portfolio_id, payload.headline, payload.subheadline, payload.highlights)


# ===========================
# Tenant admin: skills
# ===========================
@app.get("/api/admin/skill-groups")
def list_skill_groups(menu_key: Optional[str] = None, scope: Scope = Depends(get_scope), db=Depends(get_db)):
    if scope.portfolio_id is None:
        return []
    definition = _catalog_menu(db, "skills_template", menu_key)
    return content.load_skills(db, scope.portfolio_id, visible_only=False).get(definition.id, [])

@app.post("/api/admin/skill-groups")
def create_skill_group(payload: SkillGroupCreate, menu_key: Optional[str] = None, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    definition = _catalog_menu(db, "skills_template", menu_key)
    return content.create_skill_group(db, portfolio_id, definition.id, payload.name, payload.skills)

@app.put("/api/admin/skill-groups/{group_id}")
def update_skill_group(group_id: str, payload: SkillGroupUpdate, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    content.update_item(db, "skillgroup", portfolio_id, group_id, payload.model_dump())
    return content.get_skill_group(db, portfolio_id, group_id)

@app.put("/api/admin/skill-groups/{group_id}/skills")
def replace_group_skills(group_id: str, payload: SkillsReplace, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    content.replace_skills(db, portfolio_id, group_id, payload.skills)
    return content.get_skill_group(db, portfolio_id, group_id)

@app.delete("/api/admin/skill-groups/{group_id}")
def delete_skill_group(group_id: str, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    content.delete_skill_group(db, portfolio_id, group_id)
    return {"status": "deleted"}


# ===================================================
# Tenant admin: experience, projects, architecture
# ===================================================
ITEM_ROUTES = (
    ("experience", "experience", "experience_template", ExperienceIn),
    ("projects", "project", "projects_template", ProjectIn),
    ("architecture-pillars", "architecturepillar", "architecture_template", PillarIn),
)


def _register_item_routes(path: str, collection: str, template: str, model):
    def list_items(menu_key: Optional[str] = None, scope: Scope = Depends(get_scope), db=Depends(get_db)):
        if scope.portfolio_id is None:
            return []
        definition = _catalog_menu(db, template, menu_key)
        return content.list_items(db, collection, scope.portfolio_id, definition.id)

    def create_item(payload: model, menu_key: Optional[str] = None, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
        if not payload.title:
            raise InvalidRequestError("Title is required")
        definition = _catalog_menu(db, template, menu_key)
        fields = {k: v for k, v in payload.model_dump().items() if v is not None}
        return content.create_item(db, collection, portfolio_id, definition.id, fields)

    def update_item(item_id: str, payload: model, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
        return content.update_item(db, collection, portfolio_id, item_id, payload.model_dump())

    def delete_item(item_id: str, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
        content.delete_item(db, collection, portfolio_id, item_id)
        return {"status": "deleted"}

    app.add_api_route(f"/api/admin/{path}", list_items, methods=["GET"], name=f"list_{collection}")
    app.add_api_route(f"/api/admin/{path}", create_item, methods=["POST"], name=f"create_{collection}")
    app.add_api_route(f"/api/admin/{path}/{{item_id}}", update_item, methods=["PUT"], name=f"update_{collection}")
    app.add_api_route(f"/api/admin/{path}/{{item_id}}", delete_item, methods=["DELETE"], name=f"delete_{collection}")


for _path, _collection, _template, _model in ITEM_ROUTES:
    _register_item_routes(_path, _collection, _template, _model)


@app.put("/api/admin/items/{family}/{item_id}/visibility")
def update_item_visibility(family: str, item_id: str, payload: ItemVisibilityUpdate, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    return content.set_item_visibility(db, family, portfolio_id, item_id, payload.is_visible)


# ==========================================
# Tenant admin: about, architecture, contact
# ==========================================
@app.get("/api/admin/about")
def get_about(menu_key: Optional[str] = None, scope: Scope = Depends(get_scope), db=Depends(get_db)):
    if scope.portfolio_id is None:
        return None
    definition = _catalog_menu(db, "about_template", menu_key)
    return content.get_singleton(db, "aboutcontent", scope.portfolio_id, definition.id)

@app.put("/api/admin/about")
def update_about(payload: AboutUpdate, menu_key: Optional[str] = None, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    definition = _catalog_menu(db, "about_template", menu_key)
    principles = [p.model_dump() for p in payload.principles]
    return content.upsert_about(db, portfolio_id, definition.id, payload.title, payload.paragraphs, principles)

@app.get("/api/admin/architecture")
def get_architecture(menu_key: Optional[str] = None, scope: Scope = Depends(get_scope), db=Depends(get_db)):
    if scope.portfolio_id is None:
        return None
    definition = _catalog_menu(db, "architecture_template", menu_key)
    return content.load_architecture(db, scope.portfolio_id, visible_only=False).get(definition.id)

@app.put("/api/admin/architecture")
def update_architecture(payload: ArchitectureUpdate, menu_key: Optional[str] = None, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    definition = _catalog_menu(db, "architecture_template", menu_key)
    return content.upsert_architecture(db, portfolio_id, definition.id, payload.title, payload.intro)

@app.get("/api/admin/contact")
def get_contact(menu_key: Optional[str] = None, scope: Scope = Depends(get_scope), db=Depends(get_db)):
    if scope.portfolio_id is None:
        return None
    definition = _catalog_menu(db, "contact_template", menu_key)
    return content.get_singleton(db, "personinfo", scope.portfolio_id, definition.id)

@app.put("/api/admin/contact")
def update_contact(payload: ContactUpdate, menu_key: Optional[str] = None, portfolio_id: str = Depends(require_write_scope), db=Depends(get_db)):
    definition = _catalog_menu(db, "contact_template", menu_key)
    return content.upsert_person(db, portfolio_id, definition.id, payload.model_dump())


# ==================================
# Platform operator
# ==================================
@app.get("/api/platform/accounts")
def operator_list_accounts(_: Caller = Depends(get_operator), db=Depends(get_db)):
    return portfolios.list_accounts(db)

@app.get("/api/platform/portfolios")
def operator_list_portfolios(_: Caller = Depends(get_operator), db=Depends(get_db)):
    return portfolios.list_portfolios(db)

@app.put("/api/platform/impersonation")
def start_impersonation(payload: ImpersonationRequest, response: Response, operator: Caller = Depends(get_operator), db=Depends(get_db)):
    portfolio = portfolios.get_portfolio(db, payload.portfolio_id)
    if not portfolio:
        raise NotFoundError("Portfolio not found")
    set_impersonation_cookie(response, str(portfolio["_id"]))
    logger.info("Operator %s is viewing portfolio %s (read-only)", operator.account_id, portfolio["_id"])
    return {"success": True, "portfolio_id": str(portfolio["_id"])}

@app.delete("/api/platform/impersonation")
def stop_impersonation(response: Response, operator: Caller = Depends(get_operator)):
    clear_impersonation_cookie(response)
    logger.info("Operator %s stopped impersonating", operator.account_id)
    return {"success": True, "portfolio_id": None}

@app.get("/api/platform/reviews")
def operator_pending_reviews(_: Caller = Depends(get_operator), db=Depends(get_db)):
    pending = portfolios.pending_reviews(db)
    return {"count": len(pending), "portfolios": pending}

@app.post("/api/platform/portfolios/{portfolio_id}/approve")
def operator_approve(portfolio_id: str, _: Caller = Depends(get_operator), db=Depends(get_db)):
    return portfolios.approve_portfolio(db, portfolio_id)

@app.post("/api/platform/portfolios/{portfolio_id}/reject")
def operator_reject(portfolio_id: str, payload: RejectRequest, _: Caller = Depends(get_operator), db=Depends(get_db)):
    return portfolios.reject_portfolio(db, portfolio_id, payload.reason)

@app.get("/api/platform/menus")
def operator_list_menus(_: Caller = Depends(get_operator), db=Depends(get_db)):
    return [d.to_public() for d in MenuCatalog.load(db).all()]

@app.post("/api/platform/menus")
def operator_create_menu(payload: PlatformMenuCreate, _: Caller = Depends(get_operator), db=Depends(get_db)):
    definition = menus.create_platform_menu(
        db,
        payload.key,
        payload.label,
        payload.component_keys,
        order=payload.order,
        enabled=payload.enabled,
        section_type=payload.section_type,
    )
    return definition.to_public()

@app.post("/api/platform/menus/recover-hidden")
def operator_recover_hidden_blocks(_: Caller = Depends(get_operator), db=Depends(get_db)):
    return menus.recover_hidden_blocks(db)

@app.post("/api/platform/menus/restore-defaults")
def operator_restore_default_components(_: Caller = Depends(get_operator), db=Depends(get_db)):
    return menus.restore_default_components(db)

@app.put("/api/platform/menus/{menu_id}")
def operator_update_menu(menu_id: str, payload: PlatformMenuUpdate, _: Caller = Depends(get_operator), db=Depends(get_db)):
    definition = menus.update_platform_menu(
        db,
        menu_id,
        label=payload.label,
        enabled=payload.enabled,
        order=payload.order,
        component_keys=payload.component_keys,
    )
    return definition.to_public()

@app.delete("/api/platform/menus/{menu_id}")
def operator_delete_menu(menu_id: str, _: Caller = Depends(get_operator), db=Depends(get_db)):
    menus.delete_platform_menu(db, menu_id)
    return {"status": "deleted"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
