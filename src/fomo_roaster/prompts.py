from enum import Enum
from typing import NamedTuple


class OutputFormat(str, Enum):
    FREE_TEXT = "free_text"
    STRUCTURED = "structured"


class PromptTemplate(NamedTuple):
    name: str
    version: str  # part of the cache key; bump when wording or output shape changes
    output_format: OutputFormat
    text: str


class UnknownTemplate(KeyError):
    pass


ROAST_TEMPLATE = PromptTemplate(
    name="roast",
    version="roast-v4",
    output_format=OutputFormat.FREE_TEXT,
    text="""\
You are a battle-scarred senior developer who has watched every hype cycle \
rise and crash. You are blunt and opinionated and you never sugarcoat. Read the \
GitHub data below, work out which parts of this developer's stack are boring, \
legacy or outdated, give them a Tech FOMO Score from 0 ("extinct dinosaur") to \
100 ("future-proof"), and deliver a funny, painful but truthful roast about \
everything they are missing out on. Finish with specific upgrade advice.

Raw data from the user's most recently active repositories:
{context}

Work through it step by step, but keep the output tight:
1. Detect the stack: infer frameworks and tools from files and languages \
(package.json + next.config.js means Next.js, pom.xml means Java/Spring, no \
AI/ML traces means asleep at the wheel).
2. Spot what is outdated or boring: legacy libraries, missing trends, safe \
choices everyone else has moved past.
3. Score it: reward modern and trending tech, innovation (AI, edge) and \
scalability; subtract heavily for every dinosaur technology.
4. Roast: funny, a little painful, always backed by what the data shows.
5. Upgrades: 3-5 personalized, actionable recommendations tied to their stack.
6. Close with one shareable call to action.

Constraints:
- Under 500 words, screenshot-ready, key phrases in **bold**.
- Tone: cocky senior dev, no holds barred, never hateful.
- Format:
  **Detected Stack:** bullet list.
  **Tech FOMO Score: XX/100** followed by one savage sentence explaining it.
  **The Roast:** two or three paragraphs.
  **Upgrade or Die:** numbered recommendations.
  **CTA:** one line.
- Use emojis sparingly.
""",
)

STRUCTURED_TEMPLATE = PromptTemplate(
    name="structured",
    version="structured-v2",
    output_format=OutputFormat.STRUCTURED,
    text="""\
You review developers' technology stacks. Based on the GitHub data below, \
give a brutally honest roast of their languages and frameworks together with \
solid recommendations for improvement.

Consider:
1. How the detected frameworks and libraries compare to the current, popular \
ones. Recommend modern alternatives for outdated choices.
2. Whether the programming languages are still relevant or have been overtaken.
3. Outdated versions of tools, and why upgrading pays off.
4. Trends they are missing (AI, cloud, modern frontend frameworks).

GitHub data:
{context}

Respond with a JSON object containing exactly these fields:
- "totalFomoScore": an integer from 0 to 100 (0 is hopelessly outdated, 100 is \
cutting edge).
- "roast": one long paragraph (at least 100 words) roasting the stack.
- "skillsToLearn": one long paragraph (at least 100 words) of concrete skills \
to learn next.
- "summary": one long paragraph (at least 100 words) summarizing the verdict.

Style: trendy slang, spicy but constructive, emojis welcome, no personal \
attacks. Strings must not contain raw newlines; use \\n instead. Only output \
valid JSON. No markdown fences, no extra text.\
""",
)

TEMPLATES: dict[str, PromptTemplate] = {
    t.name: t for t in (ROAST_TEMPLATE, STRUCTURED_TEMPLATE)
}


def get_template(name: str) -> PromptTemplate:
    try:
        return TEMPLATES[name]
    except KeyError:
        raise UnknownTemplate(f"Unknown prompt template: {name!r}") from None


def render(template: PromptTemplate, context: str) -> str:
    # str.replace rather than format(): the context is user data and may contain braces
    return template.text.replace("{context}", context).strip()


MANIFEST_SELECTION_PROMPT = """\
Here are the top-level files of a GitHub repository:
{files}

Pick the ONE file that best reveals which frameworks the project uses \
(for example pom.xml, package.json, requirements.txt, a .sln file). \
Reply with the exact file name and nothing else. If none of them helps, reply N.\
"""

FRAMEWORK_IDENTIFICATION_PROMPT = """\
Here is the file {path} from a GitHub repository:
{content}

Identify the programming frameworks and libraries this project uses. \
Reply with their names only, as a comma-separated list. If none can be \
identified, reply with nothing.\
"""


def build_manifest_selection_prompt(files: list[str]) -> str:
    listing = "\n".join(f"Filename: {name}" for name in files)
    return MANIFEST_SELECTION_PROMPT.replace("{files}", listing)


def build_framework_prompt(path: str, content: str) -> str:
    return FRAMEWORK_IDENTIFICATION_PROMPT.replace("{path}", path).replace("{content}", content)
