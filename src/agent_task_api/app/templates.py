"""Built-in task templates keyed by task type."""

from __future__ import annotations

from .models import TaskTemplate, TemplateExample

_SEVERITY = {"type": "string", "enum": ["low", "medium", "high", "critical"]}
_STRING_LIST = {"type": "array", "items": {"type": "string"}}

TASK_TEMPLATES: dict[str, TaskTemplate] = {
    "code-review": TaskTemplate(
        id="code-review",
        name="Code Review",
        description="Review code for quality, security, and best practices",
        category="Development",
        default_prompt=(
            "Please review the code in this repository. Focus on:\n"
            "1. Code quality and maintainability\n"
            "2. Security vulnerabilities\n"
            "3. Performance issues\n"
            "4. Adherence to best practices\n"
            "5. Testing coverage\n\n"
            "Provide specific recommendations and prioritized action items."
        ),
        allowed_tools="Read,Grep,Edit,Write,Bash",
        output_schema={
            "type": "object",
            "properties": {
                "summary": {"type": "string"},
                "issues": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "severity": _SEVERITY,
                            "category": {"type": "string"},
                            "description": {"type": "string"},
                            "location": {"type": "string"},
                            "recommendation": {"type": "string"},
                        },
                    },
                },
                "recommendations": _STRING_LIST,
                "overallScore": {"type": "number", "minimum": 1, "maximum": 10},
            },
            "required": ["summary", "issues"],
        },
        recommended_max_turns=15,
        examples=[
            TemplateExample(
                description="Review entire codebase",
                parameters={"maxTurns": 20, "allowedTools": "Read,Grep,Edit,Write,Bash,Glob"},
            ),
            TemplateExample(
                description="Review specific file",
                parameters={
                    "prompt": (
                        "Please review the src/components/Button.tsx file for React best "
                        "practices and accessibility compliance."
                    )
                },
            ),
        ],
    ),
    "bug-fix": TaskTemplate(
        id="bug-fix",
        name="Bug Fix",
        description="Identify and fix bugs in the codebase",
        category="Development",
        default_prompt=(
            "Please help fix the reported bug. Follow this process:\n"
            "1. Analyze the bug report and reproduce the issue\n"
            "2. Identify the root cause\n"
            "3. Implement a minimal fix\n"
            "4. Add tests to prevent regression\n"
            "5. Verify the fix works\n\n"
            "Explain your approach and provide the fix."
        ),
        allowed_tools="Read,Grep,Edit,Write,Bash",
        output_schema={
            "type": "object",
            "properties": {
                "bugAnalysis": {"type": "string"},
                "rootCause": {"type": "string"},
                "fixDescription": {"type": "string"},
                "filesChanged": _STRING_LIST,
                "testsAdded": _STRING_LIST,
                "verificationSteps": _STRING_LIST,
            },
            "required": ["bugAnalysis", "rootCause", "fixDescription"],
        },
        recommended_max_turns=12,
        examples=[
            TemplateExample(
                description="Fix crash in user authentication",
                parameters={
                    "prompt": (
                        "The application crashes when users try to login with invalid "
                        "credentials. Error occurs in src/auth/login.ts at line 45."
                    )
                },
            ),
        ],
    ),
    "feature-implementation": TaskTemplate(
        id="feature-implementation",
        name="Feature Implementation",
        description="Implement new features according to specifications",
        category="Development",
        default_prompt=(
            "Please implement the requested feature following these guidelines:\n"
            "1. Follow the existing codebase patterns and conventions\n"
            "2. Write clean, maintainable code with proper error handling\n"
            "3. Include appropriate tests\n"
            "4. Update documentation as needed\n"
            "5. Consider edge cases and performance\n\n"
            "Implement the feature step by step and explain your decisions."
        ),
        allowed_tools="Read,Grep,Edit,Write,Bash,Glob,WebSearch",
        output_schema={
            "type": "object",
            "properties": {
                "implementation": {"type": "string"},
                "filesCreated": _STRING_LIST,
                "filesModified": _STRING_LIST,
                "testsAdded": _STRING_LIST,
                "documentation": {"type": "string"},
                "usage": {"type": "string"},
            },
            "required": ["implementation", "filesCreated", "filesModified"],
        },
        recommended_max_turns=20,
        examples=[
            TemplateExample(
                description="Add user profile feature",
                parameters={
                    "prompt": (
                        "Implement a user profile feature where users can:\n"
                        "- View their profile information\n"
                        "- Edit their name, email, and bio\n"
                        "- Upload a profile picture\n"
                        "- See their account activity"
                    ),
                    "maxTurns": 25,
                },
            ),
        ],
    ),
    "documentation": TaskTemplate(
        id="documentation",
        name="Documentation Generation",
        description="Generate or update documentation for the codebase",
        category="Documentation",
        default_prompt=(
            "Please generate comprehensive documentation for this codebase. Include:\n"
            "1. Overview and architecture\n"
            "2. API documentation\n"
            "3. Setup and installation instructions\n"
            "4. Usage examples\n"
            "5. Contributing guidelines\n\n"
            "Make the documentation clear, accurate, and well-structured."
        ),
        allowed_tools="Read,Grep,Write,Edit,Glob,WebSearch",
        output_schema={
            "type": "object",
            "properties": {
                "overview": {"type": "string"},
                "apiDocumentation": {"type": "string"},
                "setupInstructions": {"type": "string"},
                "usageExamples": {"type": "string"},
                "contributingGuide": {"type": "string"},
                "filesGenerated": _STRING_LIST,
            },
            "required": ["overview", "apiDocumentation", "setupInstructions"],
        },
        recommended_max_turns=10,
        examples=[
            TemplateExample(
                description="Generate API docs",
                parameters={
                    "prompt": (
                        "Generate API documentation for the REST endpoints in src/api/, "
                        "including request/response schemas and authentication requirements."
                    )
                },
            ),
        ],
    ),
    "performance-analysis": TaskTemplate(
        id="performance-analysis",
        name="Performance Analysis",
        description="Analyze and optimize code performance",
        category="Development",
        default_prompt=(
            "Please analyze the codebase for performance issues and provide optimization "
            "recommendations. Focus on:\n"
            "1. Database query efficiency\n"
            "2. Algorithmic complexity\n"
            "3. Memory usage\n"
            "4. Network requests\n"
            "5. Rendering performance (if applicable)\n\n"
            "Provide specific, actionable optimization suggestions."
        ),
        allowed_tools="Read,Grep,Edit,Write,Bash,WebSearch",
        output_schema={
            "type": "object",
            "properties": {
                "performanceIssues": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "severity": _SEVERITY,
                            "category": {"type": "string"},
                            "description": {"type": "string"},
                            "impact": {"type": "string"},
                            "recommendation": {"type": "string"},
                            "estimatedImprovement": {"type": "string"},
                        },
                    },
                },
                "optimizations": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string"},
                            "description": {"type": "string"},
                            "implementation": {"type": "string"},
                            "priority": {"type": "number", "minimum": 1, "maximum": 5},
                        },
                    },
                },
                "benchmarks": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "metric": {"type": "string"},
                            "currentValue": {"type": "string"},
                            "targetValue": {"type": "string"},
                            "test": {"type": "string"},
                        },
                    },
                },
            },
            "required": ["performanceIssues", "optimizations"],
        },
        recommended_max_turns=15,
        examples=[
            TemplateExample(
                description="Database performance audit",
                parameters={
                    "prompt": (
                        "Focus specifically on database performance. Analyze SQL queries, "
                        "indexing, and connection pooling."
                    )
                },
            ),
        ],
    ),
    "security-audit": TaskTemplate(
        id="security-audit",
        name="Security Audit",
        description="Perform security analysis and identify vulnerabilities",
        category="Security",
        default_prompt=(
            "Please perform a comprehensive security audit of this codebase. Check for:\n"
            "1. OWASP Top 10 vulnerabilities\n"
            "2. Authentication and authorization issues\n"
            "3. Input validation and sanitization\n"
            "4. Sensitive data exposure\n"
            "5. Dependency vulnerabilities\n"
            "6. Configuration security\n\n"
            "Provide detailed findings and remediation steps."
        ),
        allowed_tools="Read,Grep,Edit,Write,Bash,WebSearch",
        output_schema={
            "type": "object",
            "properties": {
                "securityScore": {"type": "number", "minimum": 1, "maximum": 10},
                "vulnerabilities": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "severity": _SEVERITY,
                            "category": {"type": "string"},
                            "cwe": {"type": "string"},
                            "description": {"type": "string"},
                            "location": {"type": "string"},
                            "impact": {"type": "string"},
                            "remediation": {"type": "string"},
                            "cvssScore": {"type": "number"},
                        },
                    },
                },
                "recommendations": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "priority": {"type": "number", "minimum": 1, "maximum": 5},
                            "action": {"type": "string"},
                            "description": {"type": "string"},
                        },
                    },
                },
                "complianceStatus": {
                    "type": "object",
                    "properties": {
                        "standard": {"type": "string"},
                        "compliant": {"type": "boolean"},
                        "gaps": _STRING_LIST,
                    },
                },
            },
            "required": ["securityScore", "vulnerabilities", "recommendations"],
        },
        recommended_max_turns=18,
        examples=[
            TemplateExample(
                description="Quick security scan",
                parameters={
                    "prompt": (
                        "Focus on critical and high-severity vulnerabilities only. "
                        "Provide a high-level security assessment."
                    ),
                    "maxTurns": 8,
                },
            ),
        ],
    ),
    "custom": TaskTemplate(
        id="custom",
        name="Custom Task",
        description="Custom task with your own prompt and configuration",
        category="General",
        default_prompt="",
        allowed_tools="Read,Grep,Edit,Write,Bash,WebSearch",
        recommended_max_turns=20,
    ),
}


def get_task_template(task_type: str) -> TaskTemplate | None:
    return TASK_TEMPLATES.get(task_type)


def list_task_templates() -> list[TaskTemplate]:
    return list(TASK_TEMPLATES.values())


def list_task_templates_by_category() -> dict[str, list[TaskTemplate]]:
    by_category: dict[str, list[TaskTemplate]] = {}
    for template in TASK_TEMPLATES.values():
        by_category.setdefault(template.category, []).append(template)
    return by_category
