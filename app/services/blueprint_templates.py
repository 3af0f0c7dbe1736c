CORE_BLUEPRINTS = ["mvp-features", "backend", "database", "security"]

PROJECT_TYPE_BLUEPRINTS = {
    "saas": ["design-system", "frontend"],
    "marketplace": ["design-system", "frontend", "payment-integration", "trust-safety"],
    "mobile": ["mobile-architecture", "push-notifications"],
    "ecommerce": ["design-system", "frontend", "payment-integration"],
    "internal": ["frontend"],
    "api": ["api-documentation"],
    "ai-product": ["design-system", "frontend", "prompt-engineering"],
    "cli": ["cli-architecture"],
    "iot": ["device-communication", "frontend"],
}

FEATURE_BLUEPRINTS = {
    "payments": "payment-integration",
    "real-time": "real-time-architecture",
    "notifications": "notification-system",
}

BLUEPRINT_SYSTEM_PROMPT = """You are "The Architect" - a senior technical writer creating production-grade documents.

## Style
- Crystal clear and actionable
- No fluff or placeholder content
- Technical but accessible
- Include code examples where helpful

## Output Format
Write in Markdown directly. Start with a # heading. Do NOT wrap in JSON or code blocks.
No explanations before or after the document - just the document itself."""

BLUEPRINT_CONFIGS = {
    "mvp-features": {
        "title": "MVP Feature List",
        "prompt": """Generate an MVP Feature List with:
- Numbered features (maximum 12 for MVP)
- Each feature with: Title, User Story ("As a... I want... So that..."), Acceptance Criteria
- Priority labels (P0 = must have, P1 = should have, P2 = nice to have)
- Estimated complexity (Small/Medium/Large)
- OUT OF SCOPE section listing features NOT in MVP""",
    },
    "backend": {
        "title": "Backend Architecture PRD",
        "prompt": """Generate a Backend Architecture PRD with:
- API endpoints table (method, path, description, auth required)
- Request/response examples for key endpoints
- Authentication and authorization approach
- Error handling strategy with error codes
- Rate limiting and validation rules""",
    },
    "database": {
        "title": "Database Architecture",
        "prompt": """Generate a Database Architecture document with:
- Entity descriptions and their fields
- Schema definitions for every entity
- Relationships between entities (one-to-many, many-to-many)
- Index recommendations for common queries
- Data validation rules""",
    },
    "security": {
        "title": "Security PRD",
        "prompt": """Generate a Security PRD with:
- Authentication flow (signup, login, logout, password reset)
- Authorization rules (role-based access control)
- Data protection measures (encryption, PII handling)
- Input validation and sanitization rules
- Security headers and HTTPS requirements""",
    },
    "design-system": {
        "title": "Design System PRD",
        "prompt": """Generate a Design System PRD with:
- Color palette (primary, secondary, semantic colors) with hex codes
- Typography scale (headings h1-h6, body text, captions)
- Spacing system (4px/8px grid)
- Component standards (buttons, inputs, cards, modals)
- Accessibility requirements (WCAG 2.1 AA compliance)""",
    },
    "frontend": {
        "title": "Frontend Architecture PRD",
        "prompt": """Generate a Frontend Architecture PRD with:
- Framework choice, stated as "Framework: <name>"
- Component hierarchy and folder structure
- State management approach (local vs global state)
- Routing structure with page components
- Data fetching patterns and performance considerations""",
    },
    "payment-integration": {
        "title": "Payment Integration PRD",
        "prompt": """Generate a Payment Integration PRD with:
- Payment provider choice and account setup
- Checkout and subscription flows step by step
- Webhook events to handle and their side effects
- Refund, dispute and failed-payment handling
- PCI compliance boundaries (what never touches our servers)""",
    },
    "trust-safety": {
        "title": "Trust & Safety PRD",
        "prompt": """Generate a Trust & Safety PRD with:
- Identity verification levels for buyers and sellers
- Reviews and reputation model
- Content moderation and reporting workflow
- Fraud signals and automated holds
- Dispute resolution process""",
    },
    "mobile-architecture": {
        "title": "Mobile Architecture PRD",
        "prompt": """Generate a Mobile Architecture PRD with:
- Platform and framework choice (native vs cross-platform)
- Navigation structure and screen inventory
- Offline storage and sync strategy
- API client layer and authentication token handling
- Release and update strategy (store review, OTA updates)""",
    },
    "push-notifications": {
        "title": "Push Notifications PRD",
        "prompt": """Generate a Push Notifications PRD with:
- Notification types and their triggers
- Delivery provider setup (APNs, FCM)
- Device token registration lifecycle
- User preferences and opt-out rules
- Rate limits and quiet hours""",
    },
    "api-documentation": {
        "title": "API Documentation PRD",
        "prompt": """Generate an API Documentation PRD with:
- Resource list with endpoints, methods and parameters
- Authentication scheme and API key management
- Request/response examples per endpoint
- Error format and error code catalogue
- Versioning and deprecation policy""",
    },
    "prompt-engineering": {
        "title": "Prompt Engineering PRD",
        "prompt": """Generate a Prompt Engineering PRD with:
- Model choice and fallbacks
- System prompts for each AI feature
- Structured output formats and parsing rules
- Guardrails against prompt injection and unsafe output
- Evaluation approach and cost controls""",
    },
    "cli-architecture": {
        "title": "CLI Architecture PRD",
        "prompt": """Generate a CLI Architecture PRD with:
- Command tree with arguments and flags
- Configuration file format and precedence rules
- Output formats (human, JSON) and exit codes
- Error messages and logging verbosity levels
- Packaging and distribution""",
    },
    "device-communication": {
        "title": "Device Communication PRD",
        "prompt": """Generate a Device Communication PRD with:
- Device protocols (MQTT, BLE, HTTP) and message formats
- Provisioning and device identity
- Telemetry ingestion pipeline
- Command and firmware update delivery
- Handling of offline and flaky devices""",
    },
    "real-time-architecture": {
        "title": "Real-time Architecture PRD",
        "prompt": """Generate a Real-time Architecture PRD with:
- Transport choice (WebSockets, SSE, polling) with justification
- Channel/room model and authorization per channel
- Message formats and ordering guarantees
- Presence and reconnection handling
- Scaling approach (pub/sub fan-out)""",
    },
    "notification-system": {
        "title": "Notification System PRD",
        "prompt": """Generate a Notification System PRD with:
- Channels (in-app, email, SMS, push) and when each is used
- Event catalogue with templates
- User preference model
- Delivery queue, retries and deduplication
- Digest and batching rules""",
    },
}


def blueprint_title(blueprint_type: str) -> str:
    config = BLUEPRINT_CONFIGS.get(blueprint_type)
    return config["title"] if config else f"{blueprint_type} PRD"


def build_blueprint_prompt(blueprint_type: str, conversation_summary: str) -> str:
    config = BLUEPRINT_CONFIGS.get(blueprint_type)
    outline = (
        config["prompt"]
        if config
        else f"Generate a {blueprint_title(blueprint_type)} covering goals, design and risks."
    )
    return f"""{outline}

## Project Requirements (from interview)
{conversation_summary}

Generate the {blueprint_title(blueprint_type)} now. Output markdown directly."""
