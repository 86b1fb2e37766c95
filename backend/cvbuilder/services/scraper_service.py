"""Job posting intake: scrape a posting URL or parse pasted text.

Scraping is a plain HTTP GET with a browser user agent, parsed with
BeautifulSoup. Each field walks a cascade of CSS selectors used by common
ATS and job boards; LinkedIn, Indeed and Glassdoor get dedicated selectors
when the generic pass finds no real description.
"""

import re
from dataclasses import asdict, dataclass, field
from urllib.parse import urlparse

import httpx
import structlog
from bs4 import BeautifulSoup

from cvbuilder.core.config import get_settings
from cvbuilder.core.exceptions import JobScrapeError

logger = structlog.get_logger(__name__)

MAX_DESCRIPTION_CHARS = 10_000
MAX_REQUIREMENTS = 15
MIN_DESCRIPTION_CHARS = 100
DEFAULT_TITLE = "Job Position"

TITLE_SELECTORS = [
    "h1.job-title",
    'h1[data-testid="job-title"]',
    ".job-title h1",
    ".posting-headline h2",
    "h1.topcard__title",
    "h1.job-details-jobs-unified-top-card__job-title",
    "[data-job-title]",
    "h1",
]
COMPANY_SELECTORS = [
    ".company-name",
    '[data-testid="company-name"]',
    ".topcard__org-name-link",
    ".job-details-jobs-unified-top-card__company-name",
    ".posting-categories .company",
    "a[data-company-name]",
    ".employer-name",
]
LOCATION_SELECTORS = [
    ".job-location",
    '[data-testid="job-location"]',
    ".topcard__flavor--bullet",
    ".job-details-jobs-unified-top-card__bullet",
    ".posting-categories .location",
    ".location",
]
DESCRIPTION_SELECTORS = [
    ".job-description",
    '[data-testid="job-description"]',
    ".description__text",
    ".jobs-description-content__text",
    ".posting-description",
    "#job-description",
    ".job-details",
    "article",
    ".content-wrapper",
]
REQUIREMENT_SELECTORS = [
    ".requirements ul li",
    ".qualifications ul li",
    '[data-testid="requirements"] li',
    ".job-requirements li",
    "ul.requirements li",
]
SALARY_SELECTORS = [".salary", '[data-testid="salary"]', ".compensation", ".salary-range"]

SALARY_PATTERN = re.compile(
    r"\$[\d,]+(?:\s*-\s*\$[\d,]+)?(?:\s*(?:per|/)\s*(?:year|month|hour|annum))?",
    re.IGNORECASE,
)

# host fragment -> (title selectors, company selectors, description selectors)
SITE_SELECTORS: dict[str, tuple[list[str], list[str], list[str]]] = {
    "linkedin.com": (
        [".top-card-layout__title", "h1"],
        [".topcard__org-name-link", ".top-card-layout__card a"],
        [".description__text", ".show-more-less-html__markup"],
    ),
    "indeed.com": (
        ['[data-testid="job-title"]', ".jobsearch-JobInfoHeader-title"],
        ['[data-testid="company-name"]', ".jobsearch-CompanyInfoContainer"],
        ["#jobDescriptionText", ".jobsearch-jobDescriptionText"],
    ),
    "glassdoor.com": (
        ['[data-test="job-title"]'],
        ['[data-test="employer-name"]'],
        [".jobDescriptionContent"],
    ),
}

_LABEL_PATTERNS = {
    "title": re.compile(r"^(position|job title|role):\s*", re.IGNORECASE),
    "company": re.compile(r"^(company|employer|organization):\s*", re.IGNORECASE),
    "location": re.compile(r"^(location|based in):\s*", re.IGNORECASE),
}


@dataclass
class ScrapedJob:
    title: str
    company: str
    location: str | None
    description: str
    requirements: list[str] = field(default_factory=list)
    salary: str | None = None
    url: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def clean_description(text: str) -> str:
    """Collapse whitespace and cap the length."""
    return re.sub(r"\s+", " ", text).strip()[:MAX_DESCRIPTION_CHARS]


def _first_text(soup: BeautifulSoup, selectors: list[str], min_len: int, max_len: int) -> str | None:
    for selector in selectors:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = element.get_text(" ", strip=True)
        if min_len < len(text) < max_len:
            return text
    return None


def _extract_description(soup: BeautifulSoup) -> str:
    for selector in DESCRIPTION_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            text = element.get_text(" ", strip=True)
            if len(text) > MIN_DESCRIPTION_CHARS:
                return clean_description(text)

    main = " ".join(el.get_text(" ", strip=True) for el in soup.select("main, .main-content, #main"))
    if len(main) > MIN_DESCRIPTION_CHARS:
        return clean_description(main)

    body = soup.body or soup
    return clean_description(body.get_text(" ", strip=True))


def _extract_requirements(soup: BeautifulSoup) -> list[str]:
    for selector in REQUIREMENT_SELECTORS:
        items = [
            text
            for el in soup.select(selector)
            if 10 < len(text := el.get_text(" ", strip=True)) < 500
        ]
        if items:
            return items[:MAX_REQUIREMENTS]
    return []


def _extract_salary(soup: BeautifulSoup) -> str | None:
    salary = _first_text(soup, SALARY_SELECTORS, 2, 100)
    if salary:
        return salary
    match = SALARY_PATTERN.search((soup.body or soup).get_text(" ", strip=True))
    return match.group(0) if match else None


def _site_overrides(soup: BeautifulSoup, url: str) -> dict:
    host = (urlparse(url).hostname or "").lower()
    for fragment, (titles, companies, descriptions) in SITE_SELECTORS.items():
        if fragment in host:
            overrides = {
                "title": _first_text(soup, titles, 0, 200),
                "company": _first_text(soup, companies, 0, 100),
                "description": _first_text(soup, descriptions, 0, 10**7),
            }
            if overrides["description"]:
                overrides["description"] = clean_description(overrides["description"])
            return {k: v for k, v in overrides.items() if v}
    return {}


def extract_job(html: str, url: str) -> ScrapedJob:
    """Pull job fields out of a posting page."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "footer", "header"]):
        tag.decompose()

    job = ScrapedJob(
        title=_first_text(soup, TITLE_SELECTORS, 2, 200) or DEFAULT_TITLE,
        company=_first_text(soup, COMPANY_SELECTORS, 1, 100) or "",
        location=_first_text(soup, LOCATION_SELECTORS, 2, 100),
        description=_extract_description(soup),
        requirements=_extract_requirements(soup),
        salary=_extract_salary(soup),
        url=url,
    )

    if len(job.description) < MIN_DESCRIPTION_CHARS:
        for key, value in _site_overrides(soup, url).items():
            setattr(job, key, value)

    return job


async def scrape_job_url(url: str, client: httpx.AsyncClient | None = None) -> ScrapedJob:
    """Fetch and parse a job posting.

    Raises:
        JobScrapeError: fetch failed, non-2xx response, or nothing usable on the page
    """
    settings = get_settings()
    headers = {
        "User-Agent": settings.scraper_user_agent,
        "Accept": "text/html,application/xhtml+xml",
        "Accept-Language": "en-US,en;q=0.9",
    }

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.scraper_timeout_seconds, follow_redirects=True) as own:
                response = await own.get(url, headers=headers)
        else:
            response = await client.get(url, headers=headers)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("job_scrape_failed", url=url, error=str(e), error_type=type(e).__name__)
        raise JobScrapeError("Failed to scrape job posting. Please paste the job description manually.") from e

    job = extract_job(response.text, url)
    if not job.description:
        logger.warning("job_scrape_empty", url=url)
        raise JobScrapeError("Failed to scrape job posting. Please paste the job description manually.")

    logger.info("job_scraped", url=url, description_chars=len(job.description))
    return job


def parse_job_description(content: str) -> ScrapedJob:
    """Heuristic title/company/location from the first lines of pasted text."""
    lines = [line.strip() for line in content.splitlines() if line.strip()]
    found: dict[str, str] = {}

    for i, line in enumerate(lines[:5]):
        lowered = line.lower()
        if "title" not in found and (
            any(label in lowered for label in ("position:", "job title:", "role:")) or (i == 0 and len(line) < 100)
        ):
            found["title"] = _LABEL_PATTERNS["title"].sub("", line).strip()
        if "company" not in found and any(label in lowered for label in ("company:", "employer:", "organization:")):
            found["company"] = _LABEL_PATTERNS["company"].sub("", line).strip()
        if "location" not in found and any(label in lowered for label in ("location:", "based in:")):
            found["location"] = _LABEL_PATTERNS["location"].sub("", line).strip()

    return ScrapedJob(
        title=found.get("title") or DEFAULT_TITLE,
        company=found.get("company", ""),
        location=found.get("location") or None,
        description=content,
    )
