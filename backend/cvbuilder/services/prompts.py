"""Prompt builders for CV, cover letter, job analysis and ATS scoring.

Every prompt asks for a bare JSON object. The response is parsed with
``_parse_json_response`` so a fenced reply is still accepted.
"""

import json

SYSTEM_PROMPT = "You are a professional CV and cover letter writer. Always respond with valid JSON only."

CV_OUTPUT_SCHEMA = """{
  "sections": {
    "summary": "A compelling professional summary tailored to this role (2-3 sentences)",
    "experience": [
      {
        "company": "Company Name",
        "title": "Job Title",
        "location": "Location",
        "startDate": "YYYY-MM",
        "endDate": "YYYY-MM or Present",
        "description": "Brief role description",
        "achievements": ["Achievement with metrics", "Another achievement"]
      }
    ],
    "education": [
      {"institution": "School", "degree": "Degree", "field": "Field", "startDate": "YYYY-MM", "endDate": "YYYY-MM", "gpa": "GPA if notable"}
    ],
    "skills": {"technical": ["Skill"], "soft": ["Skill"]},
    "projects": [{"name": "Project", "description": "What it does", "technologies": ["Tech"]}],
    "certifications": [{"name": "Certification", "issuer": "Issuer", "date": "YYYY-MM"}],
    "languages": [{"name": "Language", "proficiency": "Level"}]
  },
  "atsScore": 85,
  "keywords": ["keyword"],
  "suggestions": ["Suggestion for improvement"]
}"""

COVER_LETTER_OUTPUT_SCHEMA = """{
  "sections": {
    "greeting": "Dear Hiring Manager,",
    "opening": "Hook and interest in the position",
    "body": "Relevant experience and achievements",
    "closing": "Call to action and closing",
    "signature": "Sincerely,\\n[Name]"
  },
  "atsScore": 80,
  "keywords": ["keyword"],
  "suggestions": ["Suggestion"]
}"""


def _period(start, end, current: bool = False) -> str:
    end_text = "Present" if current or not end else str(end)
    return f"{start} - {end_text}"


def _format_experiences(experiences: list[dict]) -> str:
    if not experiences:
        return "No experience listed"
    lines = []
    for exp in experiences:
        achievements = ", ".join(exp.get("achievements") or []) or "N/A"
        lines.append(
            f"- {exp['title']} at {exp['company']} "
            f"({_period(exp.get('start_date'), exp.get('end_date'), exp.get('current', False))})\n"
            f"  Location: {exp.get('location') or 'N/A'}\n"
            f"  Description: {exp.get('description') or ''}\n"
            f"  Achievements: {achievements}"
        )
    return "\n".join(lines)


def _format_education(educations: list[dict]) -> str:
    if not educations:
        return "No education listed"
    return "\n".join(
        f"- {edu['degree']} in {edu['field']} from {edu['institution']} "
        f"({_period(edu.get('start_date'), edu.get('end_date'))})\n"
        f"  GPA: {edu.get('gpa') or 'N/A'}"
        for edu in educations
    )


def _format_section_outline(template_sections: list[dict]) -> str:
    if not template_sections:
        return "Use standard CV sections."
    ordered = sorted(template_sections, key=lambda s: s.get("order", 0))
    return "\n".join(f"{i}. {s.get('title') or s.get('id')} ({s.get('type')})" for i, s in enumerate(ordered, 1))


def build_cv_prompt(
    profile: dict,
    job_description: str,
    job_title: str | None,
    company_name: str | None,
    tone: str,
    template_sections: list[dict],
) -> str:
    """Prompt for a full tailored CV from the whole profile."""
    skills = ", ".join(f"{s['name']} ({s.get('level', '')})" for s in profile.get("skills", [])) or "No skills listed"
    projects = "\n".join(
        f"- {p['name']}: {p.get('description') or ''} (Technologies: {', '.join(p.get('technologies') or []) or 'N/A'})"
        for p in profile.get("projects", [])
    ) or "No projects listed"
    certifications = "\n".join(
        f"- {c['name']} by {c['issuer']}" for c in profile.get("certifications", [])
    ) or "No certifications"
    languages = ", ".join(
        f"{lang['name']} ({lang.get('proficiency', '')})" for lang in profile.get("languages", [])
    ) or "English"

    return f"""You are an expert CV writer and ATS optimization specialist. Create a tailored CV for the candidate below, targeted at the job description.

## CANDIDATE PROFILE
Name: {profile.get("name") or "Candidate"}
Headline: {profile.get("headline") or "Professional"}
Summary: {profile.get("summary") or ""}

### Work Experience
{_format_experiences(profile.get("experiences", []))}

### Education
{_format_education(profile.get("educations", []))}

### Skills
{skills}

### Projects
{projects}

### Certifications
{certifications}

### Languages
{languages}

## JOB DETAILS
Title: {job_title or "Not specified"}
Company: {company_name or "Not specified"}

## JOB DESCRIPTION
{job_description}

## TEMPLATE SECTIONS (in this order)
{_format_section_outline(template_sections)}

## INSTRUCTIONS
1. Highlight the experience, skills and achievements most relevant to this job.
2. Use a {tone} tone throughout.
3. Optimize for applicant tracking systems: reuse keywords from the job description and keep standard section headers.
4. Quantify achievements where possible.
5. Never invent employers, degrees or dates that are not in the profile.

## OUTPUT FORMAT (JSON)
{CV_OUTPUT_SCHEMA}

Return ONLY valid JSON, no additional text."""


def build_cover_letter_prompt(
    profile: dict,
    job_description: str,
    job_title: str | None,
    company_name: str | None,
    tone: str,
) -> str:
    """Prompt for a cover letter from the most recent slice of the profile."""
    experiences = profile.get("experiences", [])
    latest = experiences[0] if experiences else {}
    key_experience = "\n".join(
        f"- {exp['title']} at {exp['company']}\n"
        f"  Key achievements: {', '.join((exp.get('achievements') or [])[:2]) or 'Various accomplishments'}"
        for exp in experiences
    ) or "Experienced professional"
    education = "\n".join(
        f"- {edu['degree']} in {edu['field']}, {edu['institution']}" for edu in profile.get("educations", [])
    ) or "Not listed"
    skills = ", ".join(s["name"] for s in profile.get("skills", [])) or "Various skills"

    return f"""You are an expert cover letter writer. Write a compelling, personalized cover letter for the candidate below.

## CANDIDATE PROFILE
Name: {profile.get("name") or "Candidate"}
Headline: {profile.get("headline") or "Professional"}
Current Role: {latest.get("title") or "Professional"}
Current Company: {latest.get("company") or ""}
Summary: {profile.get("summary") or ""}

### Key Experience
{key_experience}

### Education
{education}

### Top Skills
{skills}

## JOB DETAILS
Title: {job_title or "The position"}
Company: {company_name or "Your company"}

## JOB DESCRIPTION
{job_description}

## INSTRUCTIONS
1. Write 3-4 paragraphs in a {tone} tone.
2. Address specific requirements from the job description.
3. Highlight relevant achievements and skills.
4. Show enthusiasm for the role and company and end with a clear call to action.

## OUTPUT FORMAT (JSON)
{COVER_LETTER_OUTPUT_SCHEMA}

Return ONLY valid JSON, no additional text."""


def build_job_analysis_prompt(job_description: str) -> str:
    return f"""Analyze this job description and extract the key information.

JOB DESCRIPTION:
{job_description}

Return a JSON object:
{{
  "title": "Job title",
  "company": "Company name if found",
  "requirements": ["Requirement"],
  "responsibilities": ["Responsibility"],
  "keywords": ["keyword"]
}}

Return ONLY valid JSON."""


def build_ats_prompt(content: dict, job_description: str) -> str:
    return f"""Score this CV against the job description for applicant tracking system compatibility.

CV CONTENT:
{json.dumps(content, indent=2, default=str)}

JOB DESCRIPTION:
{job_description}

Score from 0-100 weighted as:
1. Keyword matching (40%)
2. Skills alignment (30%)
3. Experience relevance (20%)
4. Format and structure (10%)

Return JSON:
{{
  "score": 85,
  "feedback": [
    "Strength: ...",
    "Improvement: ...",
    "Missing: ..."
  ]
}}

Return ONLY valid JSON."""
