"""Extraction instructions: single source of truth for page extraction prompts."""

EXTRACTION_SYSTEM_PROMPT = """You extract structured data from the text content of web pages.
Answer with a single JSON object that validates against the given JSON Schema.
Do not wrap it in Markdown and do not add explanations."""

EXTRACTION_USER_PROMPT = """## Page
URL: {target}

{page_text}

## Instructions
{instruction}

## JSON Schema
{json_schema}"""

APP_LISTING_INSTRUCTION = (
    "Extract all apps information. For each app card/item on the page, get: "
    "1) The app name, "
    "2) The full HTTP/HTTPS URL or website link associated with the app (not just numbers or IDs, "
    "but actual website URLs like https://openrouter.ai/apps?url=https%3A%2F%2Fcline.bot%2F), "
    "3) The tokens used value. "
    "If no full URL is visible, extract any domain name or website reference."
)

APP_DETAILS_INSTRUCTION = (
    "Extract the app information from this page. Get the app name and description. "
    "The name should be the main title/heading of the app, and the description should be "
    "the subtitle or brief description that explains what the app does."
)

CATEGORY_INSTRUCTION = """Analyze this website/application and categorize it into EXACTLY ONE of these categories. You MUST choose from these exact options:

1. "Coding" - Code editors, IDEs, development tools, programming assistants, code generation tools
2. "Marketing" - Marketing tools, SEO optimization, content marketing, social media tools, advertising
3. "Personal Assistant" - General AI assistants, productivity helpers, task management, general Q&A bots
4. "Roleplay" - Character chat, roleplay conversations, entertainment chat, fictional characters
5. "Translation" - Language translation tools, localization services
6. "Others" - Anything that doesn't clearly fit the above categories

IMPORTANT: Return ONLY the category name exactly as written above. Do not add explanations or additional text."""
