"""
Tests for framework-specific prompt rendering.
"""

import pytest

from compliance_autopilot.common_types import AnalysisRequest, Framework
from compliance_autopilot.prompts import FRAMEWORK_CHECKS, build_prompt


class TestBuildPrompt:
    """Tests for build_prompt."""

    @pytest.mark.parametrize("framework,title", [
        (Framework.SOC2, "SOC2"),
        (Framework.GDPR, "GDPR"),
        (Framework.ISO27001, "ISO 27001"),
    ])
    def test_framework_title_and_checks(self, framework, title):
        prompt = build_prompt(AnalysisRequest(code="x = 1", file_path="app.py", framework=framework))

        assert f"Analyze this code for {title} compliance violations." in prompt
        for i, check in enumerate(FRAMEWORK_CHECKS[framework], 1):
            assert f"{i}. {check}" in prompt

    def test_code_and_file_included(self):
        prompt = build_prompt(AnalysisRequest(
            code="print(user.ssn)", file_path="src/users.py", framework="gdpr",
        ))

        assert "File: src/users.py" in prompt
        assert "```\nprint(user.ssn)\n```" in prompt
        assert '"compliant": boolean' in prompt
        assert "PII_EXPOSURE" in prompt

    def test_optional_language_and_context(self):
        bare = build_prompt(AnalysisRequest(code="x", file_path="a.go", framework="soc2"))
        rich = build_prompt(AnalysisRequest(
            code="x", file_path="a.go", framework="soc2",
            language="go", context="payments service",
        ))

        assert "Language:" not in bare
        assert "Context:" not in bare
        assert "Language: go" in rich
        assert "Context: payments service" in rich

    def test_schema_braces_rendered(self):
        prompt = build_prompt(AnalysisRequest(code="x", file_path="a", framework="iso27001"))

        assert "{{" not in prompt
        assert "control ID like A.9.1" in prompt
