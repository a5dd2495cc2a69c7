"""
Database Schemas for the Portfolio Site Builder

Each Pydantic model = one MongoDB collection (lowercased class name).
Foreign keys are stored as the string form of the target ObjectId.

Collections:
- Account: identity + role, owns at most one Portfolio
- Portfolio: publication status, master switch, per-section toggles
- PlatformMenu: global menu catalog (operator managed)
- PortfolioMenu: per-tenant instantiation of a PlatformMenu
- SkillGroup / Skill, Experience, Project, AboutContent,
  ArchitectureContent / ArchitecturePillar, PersonInfo: template content
- HeroContent: portfolio-level hero
- MenuBlock: one UI block of a block-backed menu
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ROLE_REGULAR = "regular"
ROLE_OPERATOR = "platform_operator"

STATUS_DRAFT = "DRAFT"
STATUS_READY_FOR_REVIEW = "READY_FOR_REVIEW"
STATUS_PUBLISHED = "PUBLISHED"
STATUS_REJECTED = "REJECTED"

Role = Literal["regular", "platform_operator"]
PortfolioStatus = Literal["DRAFT", "READY_FOR_REVIEW", "PUBLISHED", "REJECTED"]

# Auth
class Account(BaseModel):
    email: str
    name: Optional[str] = None
    password_hash: str
    role: Role = Field(default=ROLE_REGULAR)
    portfolio_id: Optional[str] = None
    onboarding_step: int = Field(default=0, ge=0, le=6)
    onboarding_completed: bool = False

# Tenant
class Portfolio(BaseModel):
    account_id: str
    slug: str = Field(..., description="Public URL segment, unique")
    status: PortfolioStatus = Field(default=STATUS_DRAFT)
    is_public: bool = True
    show_skills: bool = True
    show_projects: bool = True
    show_experience: bool = True
    show_about: bool = True
    show_architecture: bool = True
    show_contact: bool = True
    rejection_reason: Optional[str] = None
    approved_at: Optional[datetime] = None
    skills_intro: Optional[str] = None
    projects_intro: Optional[str] = None
    experience_intro: Optional[str] = None
    architecture_intro: Optional[str] = None

# Menus
class PlatformMenu(BaseModel):
    key: str = Field(..., description="Stable identifier, immutable after creation")
    label: str
    order: int = 0
    enabled: bool = True
    section_type: Optional[str] = None  # e.g. "skills_template"; None for block-only menus
    component_keys: str = Field(default="[]", description="JSON-encoded ordered list of UI block types")

class PortfolioMenu(BaseModel):
    portfolio_id: str
    platform_menu_id: str
    platform_menu_key: str
    visible: bool = True
    order: int = 0
    published_visible: bool = True
    published_order: int = 0
    section_type: Optional[str] = None

# Content
class SkillGroup(BaseModel):
    portfolio_id: str
    platform_menu_id: str
    name: str
    order: int = 0
    is_visible: bool = True

class Skill(BaseModel):
    portfolio_id: str
    skill_group_id: str
    name: str
    order: int = 0
    is_visible: bool = True

class Experience(BaseModel):
    portfolio_id: str
    platform_menu_id: str
    title: str
    company: Optional[str] = None
    location: Optional[str] = None
    period: Optional[str] = None
    bullets: List[str] = Field(default_factory=list)
    tech: List[str] = Field(default_factory=list)
    order: int = 0
    is_visible: bool = True

class Project(BaseModel):
    portfolio_id: str
    platform_menu_id: str
    title: str
    summary: Optional[str] = None
    bullets: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    order: int = 0
    is_visible: bool = True

class Principle(BaseModel):
    title: str
    description: Optional[str] = None
    order: int = 0

class AboutContent(BaseModel):
    portfolio_id: str
    platform_menu_id: str
    title: Optional[str] = None
    paragraphs: str = Field(default="[]", description="JSON-encoded list of paragraphs")
    principles: List[Principle] = Field(default_factory=list)

class ArchitectureContent(BaseModel):
    portfolio_id: str
    platform_menu_id: str
    title: Optional[str] = None
    intro: Optional[str] = None

class ArchitecturePillar(BaseModel):
    portfolio_id: str
    platform_menu_id: str
    title: str
    points: List[str] = Field(default_factory=list)
    order: int = 0
    is_visible: bool = True

class PersonInfo(BaseModel):
    portfolio_id: str
    platform_menu_id: str
    name: Optional[str] = None
    role: Optional[str] = None
    location: Optional[str] = None
    email: Optional[str] = None
    email2: Optional[str] = None
    phone: Optional[str] = None
    phone2: Optional[str] = None
    whatsapp: Optional[str] = None
    linkedin: Optional[str] = None
    cv_url: Optional[str] = None
    avatar_url: Optional[str] = None
    contact_message: Optional[str] = None
    show_email: bool = True
    show_email2: bool = False
    show_phone: bool = True
    show_phone2: bool = False
    show_whatsapp: bool = False

class HeroContent(BaseModel):
    portfolio_id: str
    headline: Optional[str] = None
    subheadline: Optional[str] = None
    highlights: str = Field(default="[]", description="JSON-encoded list of highlights")

class MenuBlock(BaseModel):
    portfolio_id: str
    platform_menu_id: str
    component_key: str
    order: int = 0
    data: Dict[str, Any] = Field(default_factory=dict)
