from .models import ProjectDetails, Suggestion

SUGGESTION_SYSTEM_PROMPT = """You are an AI domain name generator. Analyze the provided project details and generate a list of domain name suggestions.
Return the result as a valid JSON object that conforms to this structure: { "suggestions": [{ "domainName": "string", "confidenceScore": number (0-1), "explanation": "string" }] }.
Do not include any text, markdown, or formatting outside of the single JSON object."""

ANALYSIS_SYSTEM_PROMPT = """You are an AI domain name expert. Answer in plain text with light markdown: **bold** for headings and lines starting with "* " for bullet points."""


def suggestion_prompt(details: ProjectDetails) -> str:
    return f"""Project Name: {details.project_name}
Business Niche: {details.business_niche}
Target Audience: {details.target_audience}
Keywords: {details.keywords}
Preferred TLDs: {', '.join(details.tld_list)}

Consider market trends, branding potential, memorability, and audience relevance when generating suggestions.
Return the top 3-5 domain suggestions, each with a confidence score (0-1) and a short explanation."""


def explanation_prompt(suggestion: Suggestion, details: ProjectDetails) -> str:
    domain = suggestion.domain_name
    return f"""A user is considering the domain name "{domain}" for their project. The following information is known about the project:

Project or Business Name: {details.project_name}
Business Niche or Personal Project Type: {details.business_niche}
Target Audience or Location: {details.target_audience}
Keywords or Ideas for the Domain: {details.keywords}

Explain in detail why "{domain}" is a good domain name for this project. Cover:

* Market trends and search demand
* Branding potential and memorability
* Audience relevance

Be informative and persuasive, with specific reasons that help the user make an informed decision."""


def research_prompt(suggestion: Suggestion, details: ProjectDetails) -> str:
    domain = suggestion.domain_name
    return f"""Perform a comprehensive market and trend analysis for the domain name "{domain}".
The user is considering this for a project with the following details:
- Project/Business Name: {details.project_name}
- Niche/Project Type: {details.business_niche}
- Target Audience/Location: {details.target_audience}
- Keywords: {details.keywords}

Your research must be deep and cover the following areas, using your web search capabilities (Google, Google Trends, social media, etc.):
1. **Market Viability:** Is there demand for businesses or projects in this niche? What is the competition like?
2. **Trend Analysis:** What are the current and projected trends for the niche and keywords? Is interest growing, stable, or declining?
3. **Branding & Memorability:** How strong is "{domain}" as a brand? Is it memorable, easy to spell, and unique?
4. **Audience Resonance:** Does the name resonate with the target audience? What is the sentiment around similar names on social media?
5. **SEO Potential:** Are the keywords in the domain valuable for search ranking?
6. **Social Media Availability:** Are handles matching or similar to the domain available on major platforms (X, Instagram, Facebook)?

Provide a structured, detailed report with clear headings for each section. Conclude with a final recommendation (Highly Recommended, Recommended, Consider Alternatives) and a summary of why."""
