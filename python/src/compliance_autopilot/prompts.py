"""
Framework-specific prompts for compliance analysis.

Each framework gets its own checklist; the response schema is shared so
the parser can validate every answer the same way.
"""

from typing import Callable

from .common_types import AnalysisRequest, Framework


PromptBuilder = Callable[[AnalysisRequest], str]


FRAMEWORK_TITLES = {
    Framework.SOC2: "SOC2",
    Framework.GDPR: "GDPR",
    Framework.ISO27001: "ISO 27001",
}

FRAMEWORK_CHECKS = {
    Framework.SOC2: [
        "Lack of code review enforcement (CC1.1)",
        "Missing deployment controls (CC6.1)",
        "Inadequate access controls (CC6.6)",
        "Missing monitoring/logging (CC7.1)",
        "Poor change management (CC7.2)",
        "Unaddressed security vulnerabilities (CC8.1)",
    ],
    Framework.GDPR: [
        "PII handling (emails, names, SSNs, phone numbers, addresses)",
        "Missing encryption for sensitive data",
        "Lack of consent mechanisms",
        "Missing data retention policies",
        "No right to deletion implementation",
        "Inadequate data minimization",
        "Missing privacy by design principles",
    ],
    Framework.ISO27001: [
        "Inadequate access control (A.9)",
        "Missing cryptographic controls (A.10)",
        "Poor physical security considerations (A.11)",
        "Inadequate operational security (A.12)",
        "Missing communications security (A.13)",
        "Lack of security incident management (A.16)",
        "Missing business continuity measures (A.17)",
    ],
}

VIOLATION_TYPE_HINTS = {
    Framework.SOC2: "control ID like CC1.1",
    Framework.GDPR: "e.g., 'PII_EXPOSURE', 'NO_ENCRYPTION'",
    Framework.ISO27001: "control ID like A.9.1",
}

FRAMEWORK_FOCUS = {
    Framework.SOC2: "Be concise and specific. Focus on actual compliance issues, not style preferences.",
    Framework.GDPR: "Be specific about what PII is exposed and how to fix it.",
    Framework.ISO27001: "Focus on security controls and operational practices.",
}

RESPONSE_SCHEMA = """{{
  "compliant": boolean,
  "score": number (0-100),
  "violations": [
    {{
      "severity": "critical" | "high" | "medium" | "low",
      "type": "string ({type_hint})",
      "description": "string",
      "lineNumbers": [number],
      "codeSnippet": "string (optional)",
      "recommendation": "string"
    }}
  ],
  "recommendations": ["string"]
}}"""


def build_prompt(request: AnalysisRequest) -> str:
    """Render the analysis prompt for a request."""
    framework = request.framework
    checks = "\n".join(
        f"{i}. {check}" for i, check in enumerate(FRAMEWORK_CHECKS[framework], 1)
    )

    header = [f"File: {request.file_path}"]
    if request.language:
        header.append(f"Language: {request.language}")
    if request.context:
        header.append(f"Context: {request.context}")

    schema = RESPONSE_SCHEMA.format(type_hint=VIOLATION_TYPE_HINTS[framework])

    return f"""Analyze this code for {FRAMEWORK_TITLES[framework]} compliance violations.

{chr(10).join(header)}

Code:
```
{request.code}
```

Check for:
{checks}

Return a JSON response with this exact structure:
{schema}

{FRAMEWORK_FOCUS[framework]}"""
