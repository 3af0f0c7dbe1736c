PROMPT_CATEGORIES = [
    "setup",
    "database",
    "auth",
    "api",
    "shared-components",
    "features",
    "pages",
    "testing",
]

CATEGORY_INFO = {
    "setup": {
        "title": "Environment Setup",
        "description": ".env.example, dependencies, folder structure",
        "estimated_time": "15-30 mins",
    },
    "database": {
        "title": "Database Layer",
        "description": "Schema definitions, migrations, seed data",
        "estimated_time": "30-45 mins",
    },
    "auth": {
        "title": "Authentication",
        "description": "Auth provider config, middleware, protected routes",
        "estimated_time": "30-60 mins",
    },
    "api": {
        "title": "Core API Routes",
        "description": "API endpoint implementation",
        "estimated_time": "45-90 mins",
    },
    "shared-components": {
        "title": "Shared Components",
        "description": "Design system components (Button, Input, Card, Modal)",
        "estimated_time": "60-90 mins",
    },
    "features": {
        "title": "Feature Components",
        "description": "Core feature implementations from the MVP list",
        "estimated_time": "60-120 mins",
    },
    "pages": {
        "title": "Pages/Routes",
        "description": "Page components with layout integration",
        "estimated_time": "45-90 mins",
    },
    "testing": {
        "title": "Testing Suite",
        "description": "Unit tests, integration tests, E2E setup",
        "estimated_time": "60-90 mins",
    },
}

# Blueprints each category draws on. A category with an empty list is always
# generated; the others only when one of their blueprints exists.
CATEGORY_BLUEPRINTS = {
    "setup": [],
    "database": ["database", "backend"],
    "auth": ["security", "backend"],
    "api": ["backend", "api-documentation", "mvp-features"],
    "shared-components": ["design-system", "frontend"],
    "features": ["mvp-features", "frontend", "backend"],
    "pages": ["frontend", "mobile-architecture"],
    "testing": [],
}

# Context shown to the model; includes blueprints that do not gate the category
CATEGORY_CONTEXT = {
    "setup": ["frontend", "backend", "design-system", "cli-architecture"],
    "database": ["database", "backend"],
    "auth": ["security", "backend"],
    "api": ["backend", "api-documentation", "mvp-features", "payment-integration"],
    "shared-components": ["design-system", "frontend"],
    "features": ["mvp-features", "frontend", "backend", "real-time-architecture"],
    "pages": ["frontend", "design-system", "mvp-features", "mobile-architecture"],
    "testing": ["backend", "frontend", "security"],
}

CATEGORY_TEMPLATES = {
    "setup": """Generate an Environment Setup task that includes:
- .env.example file with all required environment variables (placeholder values)
- Dependencies based on the tech stack
- Folder structure creation
- Initial configuration files""",
    "database": """Generate a Database Layer task that includes:
- Schema definitions based on the Database Architecture document
- Connection utility
- Type definitions for all entities
- Seed data script for development
- Required migrations or indexes""",
    "auth": """Generate an Authentication task that includes:
- Auth configuration based on the Security PRD
- Provider setup
- Session management and user schema integration
- Middleware for protected routes""",
    "api": """Generate API Routes tasks (one per major endpoint group) that include:
- Route handlers with proper HTTP methods
- Request validation
- Database operations
- Error handling with appropriate status codes
Reference the Backend Architecture PRD for endpoint specifications.""",
    "shared-components": """Generate Shared Components tasks based on the Design System PRD:
- Button component with variants
- Input component with validation states
- Card and Modal components with proper accessibility
Use the color palette and typography from the design system.""",
    "features": """Generate Feature tasks (one per core MVP feature):
- Component structure and state management
- Integration with API routes
- Loading and error states
Reference the MVP Feature List for specific requirements.""",
    "pages": """Generate Page/Route tasks that include:
- Page components with layouts
- Data fetching
- Navigation integration
- Loading and error boundaries""",
    "testing": """Generate Testing Suite tasks that include:
- Test runner configuration
- Unit tests for utilities
- API route tests
- E2E test setup""",
}

DEFAULT_USER_ACTIONS = {
    "setup": [
        "Confirm project directory is initialized",
        "Review tech stack requirements",
    ],
    "database": [
        "Ensure database connection string is configured in .env",
        "Review database schema from blueprints",
    ],
    "auth": [
        "Configure OAuth provider credentials in .env",
        "Review authentication flow from Security PRD",
    ],
    "api": [
        "Review API endpoints from Backend PRD",
        "Confirm database models are in place",
    ],
    "shared-components": [
        "Attach inspiration images for UI components (optional)",
        "Review Design System PRD for styling guidelines",
    ],
    "features": [
        "Attach feature inspiration images (optional)",
        "Review MVP Feature List for acceptance criteria",
    ],
    "pages": [
        "Confirm routing structure from Frontend PRD",
        "Ensure shared components are implemented",
    ],
    "testing": [
        "Review all implemented features",
        "Ensure test environment is configured",
    ],
}

DEFAULT_TECH_STACK = "Next.js 15, TypeScript, Tailwind CSS, MongoDB"

ENGINEERING_MANAGER_SYSTEM_PROMPT = """You are "The Engineering Manager" - a senior technical lead writing precise implementation tasks for AI coding assistants.

## Your Role
- Each task is one logical unit of work a developer pastes into an AI assistant
- Each task must result in working, production-ready code
- Reference specific files and patterns from the architecture blueprints
- Include acceptance criteria to verify the implementation

## Output Format (Strict JSON)
{
  "tasks": [
    {
      "title": "Unique, short task title",
      "prerequisites": ["Exact titles of earlier tasks that must be done first"],
      "userActions": ["Manual steps the user must take before running this task"],
      "content": "The implementation prompt itself - detailed, specific, actionable",
      "acceptanceCriteria": ["Specific testable criteria"]
    }
  ]
}

## Guidelines
- Be specific about file paths, function names and imports
- Titles must be unique; never reuse a title listed as already generated
- Only list prerequisites that appear among the already generated titles
- DON'T include placeholder content"""


def build_category_request(
    category: str,
    blueprints: list,
    project_title: str,
    tech_stack: str,
    previous_titles: list[str],
) -> str:
    info = CATEGORY_INFO[category]
    wanted = CATEGORY_CONTEXT.get(category, [])
    context = "\n\n".join(
        f"### {b.title}\n{b.content[:2000]}" for b in blueprints if b.type in wanted
    )
    previous = "\n".join(f"- {t}" for t in previous_titles) or "None (this is the first category)"
    return f"""Generate implementation tasks for: {info["title"]}

## Project Context
- Project: {project_title}
- Tech Stack: {tech_stack}
- Category: {category} ({info["description"]})
- Estimated Time: {info["estimated_time"]}

## Already Generated Tasks
{previous}

## Requirements
{CATEGORY_TEMPLATES[category]}

## Reference Blueprints
{context or "No specific blueprints available - use general best practices."}

Generate 1-3 focused tasks for this category. Output only the JSON object."""


def build_regenerate_request(
    category: str,
    blueprints: list,
    project_title: str,
    tech_stack: str,
    title: str,
    other_titles: list[str],
) -> str:
    avoid = "\n".join(f"- {t}" for t in other_titles) or "- (none)"
    base = build_category_request(category, blueprints, project_title, tech_stack, [])
    return f"""{base}

IMPORTANT: Regenerate exactly ONE task, titled "{title}".
Keep the same title but improve the content based on the context.
Do not duplicate the work of these existing tasks:
{avoid}"""
