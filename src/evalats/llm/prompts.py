from __future__ import annotations

RESUME_PARSE_SYSTEM = """
You are an expert resume parser. Extract structured information from the provided resume text.
Return strict JSON with keys:
- name: string
- email: string
- phone: string
- location: string
- linkedin: string
- github: string
- portfolio: string
- summary: string
- skills: string[] (technical skills, tools and technologies)
- experience: array of objects with keys company, title, start_date (YYYY-MM), end_date (YYYY-MM or "Present"), description
- education: array of objects with keys institution, degree, field, start_date, end_date
- certifications: string[]
- languages: string[]
- total_experience_years: integer calculated from the work history

Use an empty string or empty array when a field is not present. Do not invent facts.
""".strip()

RESUME_PARSE_PROMPT = """
Parse this resume:

{resume_text}
""".strip()
