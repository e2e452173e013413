"""
EduPortal Billing - Pricing Configuration

Default price tables and static relationship tables for the portal catalog.
Pricing in Indian Rupees (INR), whole rupees per month.

The mutable tables here are only DEFAULTS. The live values are held by
app.services.pricing_catalog.PriceCatalog, which admins can edit at runtime.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, List, Tuple


# =============================================================================
# ENUMS
# =============================================================================

class Portal(str, Enum):
    """Purchasable product tiers, each with its own base price and add-ons."""
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class BillingCycle(str, Enum):
    """Billing cycle options."""
    MONTHLY = "monthly"
    ANNUAL = "annual"


class Feature(str, Enum):
    """Add-on features. Each belongs to exactly one portal."""
    # Admin portal
    FEE_MANAGEMENT = "fee_management"
    EXAM_MANAGEMENT = "exam_management"
    TRANSPORT_MANAGEMENT = "transport_management"
    LIBRARY_MANAGEMENT = "library_management"
    PARENT_COMMUNICATION = "parent_communication"
    # Teacher portal
    GRADEBOOK = "gradebook"
    LESSON_PLANNING = "lesson_planning"
    STUDENT_ANALYTICS = "student_analytics"
    DIGITAL_CONTENT = "digital_content"
    # Student portal
    GRADE_ACCESS = "grade_access"
    LEARNING_RESOURCES = "learning_resources"
    COMMUNICATION_HUB = "communication_hub"
    EXAM_PREPARATION = "exam_preparation"


class BundleKey(str, Enum):
    """Keys of the admin-editable bundle discounts."""
    ADMIN_TEACHER = "admin_teacher"
    TEACHER_STUDENT = "teacher_student"
    ALL_THREE = "all_three"


# =============================================================================
# PRICE TABLES (defaults, INR per month)
# =============================================================================

DEFAULT_PORTAL_PRICES: Dict[Portal, int] = {
    Portal.ADMIN: 2000,
    Portal.TEACHER: 800,
    Portal.STUDENT: 400,
}

DEFAULT_FEATURE_PRICES: Dict[Feature, int] = {
    Feature.FEE_MANAGEMENT: 500,
    Feature.EXAM_MANAGEMENT: 400,
    Feature.TRANSPORT_MANAGEMENT: 300,
    Feature.LIBRARY_MANAGEMENT: 200,
    Feature.PARENT_COMMUNICATION: 250,
    Feature.GRADEBOOK: 300,
    Feature.LESSON_PLANNING: 200,
    Feature.STUDENT_ANALYTICS: 250,
    Feature.DIGITAL_CONTENT: 150,
    Feature.GRADE_ACCESS: 150,
    Feature.LEARNING_RESOURCES: 200,
    Feature.COMMUNICATION_HUB: 100,
    Feature.EXAM_PREPARATION: 250,
}

# Percent values, 0-100
DEFAULT_BUNDLE_DISCOUNTS: Dict[BundleKey, Decimal] = {
    BundleKey.ADMIN_TEACHER: Decimal("15"),
    BundleKey.TEACHER_STUDENT: Decimal("10"),
    BundleKey.ALL_THREE: Decimal("20"),
}

# Applied to any two-portal combination without a named bundle
DEFAULT_PAIR_DISCOUNT = Decimal("10")


# =============================================================================
# STATIC RELATIONSHIP TABLES
# =============================================================================

PORTAL_FEATURES: Dict[Portal, Tuple[Feature, ...]] = {
    Portal.ADMIN: (
        Feature.FEE_MANAGEMENT,
        Feature.EXAM_MANAGEMENT,
        Feature.TRANSPORT_MANAGEMENT,
        Feature.LIBRARY_MANAGEMENT,
        Feature.PARENT_COMMUNICATION,
    ),
    Portal.TEACHER: (
        Feature.GRADEBOOK,
        Feature.LESSON_PLANNING,
        Feature.STUDENT_ANALYTICS,
        Feature.DIGITAL_CONTENT,
    ),
    Portal.STUDENT: (
        Feature.GRADE_ACCESS,
        Feature.LEARNING_RESOURCES,
        Feature.COMMUNICATION_HUB,
        Feature.EXAM_PREPARATION,
    ),
}

FEATURE_PORTAL: Dict[Feature, Portal] = {
    feature: portal
    for portal, features in PORTAL_FEATURES.items()
    for feature in features
}

BUNDLE_PORTALS: Dict[BundleKey, FrozenSet[Portal]] = {
    BundleKey.ADMIN_TEACHER: frozenset({Portal.ADMIN, Portal.TEACHER}),
    BundleKey.TEACHER_STUDENT: frozenset({Portal.TEACHER, Portal.STUDENT}),
    BundleKey.ALL_THREE: frozenset(Portal),
}

# Months charged per cycle (annual = 10 months for 12)
BILLING_MULTIPLIERS: Dict[BillingCycle, int] = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.ANNUAL: 10,
}

ANNUAL_SAVINGS_NOTE = "2 months free with annual billing"


# =============================================================================
# DISPLAY METADATA
# =============================================================================

@dataclass(frozen=True)
class PortalInfo:
    """Display information for a portal."""
    name: str
    description: str
    core_features: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class FeatureInfo:
    """Display information for an add-on feature."""
    name: str
    description: str


PORTAL_INFO: Dict[Portal, PortalInfo] = {
    Portal.ADMIN: PortalInfo(
        name="School Admin Portal",
        description="Complete school administration and management",
        core_features=["Dashboard Overview", "Student Management", "Staff Management", "Basic Reports"],
    ),
    Portal.TEACHER: PortalInfo(
        name="Teacher Portal",
        description="Classroom and teaching management tools",
        core_features=["Class Dashboard", "Attendance Management", "Assignment Management"],
    ),
    Portal.STUDENT: PortalInfo(
        name="Student Portal",
        description="Student learning and progress tracking",
        core_features=["Personal Dashboard", "Assignment Submission", "Attendance View"],
    ),
}

FEATURE_INFO: Dict[Feature, FeatureInfo] = {
    Feature.FEE_MANAGEMENT: FeatureInfo("Fee Management", "Track and manage student fee payments"),
    Feature.EXAM_MANAGEMENT: FeatureInfo("Exam & Result Management", "Create exams and manage results"),
    Feature.TRANSPORT_MANAGEMENT: FeatureInfo("Transport Management", "Manage school transport routes"),
    Feature.LIBRARY_MANAGEMENT: FeatureInfo("Library Management", "Track library books and borrowing"),
    Feature.PARENT_COMMUNICATION: FeatureInfo("Parent Communication", "Send updates to parents"),
    Feature.GRADEBOOK: FeatureInfo("Gradebook & Assessment", "Manage grades and assessments"),
    Feature.LESSON_PLANNING: FeatureInfo("Lesson Planning", "Plan and organize lessons"),
    Feature.STUDENT_ANALYTICS: FeatureInfo("Student Analytics", "View student performance analytics"),
    Feature.DIGITAL_CONTENT: FeatureInfo("Digital Content Library", "Access teaching materials"),
    Feature.GRADE_ACCESS: FeatureInfo("Grade & Report Access", "View grades and reports"),
    Feature.LEARNING_RESOURCES: FeatureInfo("Learning Resources", "Access study materials"),
    Feature.COMMUNICATION_HUB: FeatureInfo("Communication Hub", "Communicate with teachers"),
    Feature.EXAM_PREPARATION: FeatureInfo("Exam Preparation", "Practice tests and preparation"),
}

BUNDLE_INFO: Dict[BundleKey, str] = {
    BundleKey.ADMIN_TEACHER: "Admin + Teacher Bundle",
    BundleKey.TEACHER_STUDENT: "Teacher + Student Bundle",
    BundleKey.ALL_THREE: "Complete School Bundle",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_feature_display_name(feature_id: str) -> str:
    """Get human-readable feature name, falling back to the id."""
    try:
        return FEATURE_INFO[Feature(feature_id)].name
    except ValueError:
        return feature_id


def format_rupees(amount: int) -> str:
    """Format an amount as Indian Rupees."""
    return f"₹{amount:,}"
