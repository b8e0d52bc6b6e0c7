"""Language-specific code templates built from a problem's interface spec."""

import logging
from typing import Dict, List, Optional


logger = logging.getLogger(__name__)

LANGUAGES = [
    {"value": "python", "label": "Python", "extension": "py"},
    {"value": "javascript", "label": "JavaScript", "extension": "js"},
    {"value": "java", "label": "Java", "extension": "java"},
]

PYTHON_TYPES = {
    "int": "int",
    "integer": "int",
    "float": "float",
    "number": "float",
    "string": "str",
    "bool": "bool",
    "boolean": "bool",
    "int[]": "List[int]",
    "array<integer>": "List[int]",
    "array<string>": "List[str]",
    "array<float>": "List[float]",
    "array": "List",
    "object": "Dict",
    "array<array<integer>>": "List[List[int]]",
}

JAVASCRIPT_TYPES = {
    "int": "number",
    "integer": "number",
    "float": "number",
    "number": "number",
    "string": "string",
    "bool": "boolean",
    "boolean": "boolean",
    "int[]": "number[]",
    "array<integer>": "number[]",
    "array<string>": "string[]",
    "array<float>": "number[]",
    "array": "any[]",
    "object": "object",
    "array<array<integer>>": "number[][]",
}

JAVA_TYPES = {
    "int": "int",
    "integer": "int",
    "float": "double",
    "number": "double",
    "string": "String",
    "bool": "boolean",
    "boolean": "boolean",
    "int[]": "int[]",
    "array<integer>": "int[]",
    "array<string>": "String[]",
    "array<float>": "double[]",
    # Java has no untyped array
    "array": "int[]",
    "object": "HashMap<String, Object>",
    "array<array<integer>>": "int[][]",
    "void": "void",
    "null": "void",
}


def python_type(type_name: Optional[str]) -> str:
    if not type_name:
        return "Any"
    return PYTHON_TYPES.get(type_name, "Any")


def javascript_type(type_name: Optional[str]) -> str:
    if not type_name:
        return "any"
    return JAVASCRIPT_TYPES.get(type_name, "any")


def java_type(type_name: Optional[str]) -> str:
    if not type_name:
        return "int"
    if type_name not in JAVA_TYPES and "[]" in type_name:
        return java_type(type_name.replace("[]", "", 1)) + "[]"
    return JAVA_TYPES.get(type_name, "int")


def minimal_template(language: str) -> str:
    """Fallback template when the problem has no interface spec."""
    if language == "python":
        return "# Your code here"
    if language == "java":
        return (
            "public class Solution {\n"
            "    public static void main(String[] args) {\n"
            "        // Your code here\n"
            "    }\n"
            "}"
        )
    return "// Your code here"


def function_template(language: str, spec: dict) -> str:
    """Build a function stub for a language from an interface spec."""
    name = spec.get("function_name")
    if not name:
        logger.error("Invalid interface spec for template: %r", spec)
        return minimal_template(language)

    params: List[dict] = spec.get("parameters") or spec.get("params") or []
    return_type = spec.get("return_type") or spec.get("returns")

    if language == "python":
        doc = "\n    ".join(f"{p['name']}: {python_type(p.get('type'))}" for p in params)
        return (
            f"def {name}({', '.join(p['name'] for p in params)}):\n"
            f'    """\n'
            f"    {doc}\n"
            f"    Returns: {python_type(return_type)}\n"
            f'    """\n'
            f"    # TODO: Implement your solution here\n"
            f"    pass"
        )

    if language == "javascript":
        doc = "\n * ".join(
            f"@param {{{javascript_type(p.get('type'))}}} {p['name']}" for p in params
        )
        return (
            f"/**\n"
            f" * {doc}\n"
            f" * @returns {{{javascript_type(return_type)}}}\n"
            f" */\n"
            f"function {name}({', '.join(p['name'] for p in params)}) {{\n"
            f"    // TODO: Implement your solution here\n"
            f"    \n"
            f"}}"
        )

    if language == "java":
        java_return = java_type(return_type)
        args = ", ".join(f"{java_type(p.get('type'))} {p['name']}" for p in params)
        doc = "\n     * ".join(f"@param {p['name']} {java_type(p.get('type'))}" for p in params)
        hint = ""
        if "HashMap" in java_return:
            hint = (
                "        // NOTE: You can change return type above if needed "
                "(int, int[], String, etc.)\n"
            )
        return (
            f"class Solution {{\n"
            f"    /**\n"
            f"     * {doc}\n"
            f"     * @return {java_return}\n"
            f"     */\n"
            f"    public {java_return} {name}({args}) {{\n"
            f"{hint}"
            f"        // TODO: Implement your solution here\n"
            f"        \n"
            f"    }}\n"
            f"}}"
        )

    return minimal_template(language)


def generate_code_template(
    language: str,
    interface_spec: Optional[dict] = None,
    function_templates: Optional[Dict[str, dict]] = None,
) -> str:
    """
    Generate the starting code for a language.
    Backend stub code wins, then the interface spec, then a minimal template.
    """
    stub = ((function_templates or {}).get(language) or {}).get("stub_code")
    if stub:
        return stub

    if isinstance(interface_spec, dict) and (
        interface_spec.get("function_name") or interface_spec.get("mode") == "FUNCTION"
    ):
        return function_template(language, interface_spec)

    return minimal_template(language)


def supported_languages(interface_spec: Optional[dict] = None) -> List[dict]:
    """Languages offered for a problem; Java is dropped for object returns."""
    if (interface_spec or {}).get("return_type") == "object":
        return [lang for lang in LANGUAGES if lang["value"] != "java"]
    return list(LANGUAGES)


def language_for_extension(extension: str) -> Optional[str]:
    """Map a file extension (with or without dot) to a language."""
    extension = extension.lstrip(".").lower()
    for lang in LANGUAGES:
        if lang["extension"] == extension:
            return lang["value"]
    return None


def normalize_draft_text(value: Optional[str]) -> str:
    """Normalize line endings and trim, for draft comparisons."""
    return str(value or "").replace("\r\n", "\n").strip()
