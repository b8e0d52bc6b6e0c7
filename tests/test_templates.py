from challenge_py.session.templates import (
    generate_code_template,
    java_type,
    language_for_extension,
    normalize_draft_text,
    supported_languages,
)

SPEC = {
    "function_name": "two_sum",
    "parameters": [
        {"name": "nums", "type": "array<integer>"},
        {"name": "target", "type": "integer"},
    ],
    "return_type": "int[]",
}


def test_backend_stub_wins():
    templates = {"python": {"stub_code": "def solve():\n    pass"}}
    assert generate_code_template("python", SPEC, templates) == "def solve():\n    pass"


def test_python_template_from_spec():
    code = generate_code_template("python", SPEC)
    assert code.startswith("def two_sum(nums, target):")
    assert "nums: List[int]" in code
    assert "Returns: List[int]" in code


def test_javascript_template_from_legacy_keys():
    spec = {"function_name": "add", "params": [{"name": "a", "type": "int"}], "returns": "int"}
    code = generate_code_template("javascript", spec)
    assert "function add(a) {" in code
    assert "@param {number} a" in code
    assert "@returns {number}" in code


def test_java_template_signature():
    code = generate_code_template("java", SPEC)
    assert "public int[] two_sum(int[] nums, int target) {" in code
    assert code.startswith("class Solution {")


def test_minimal_template_without_spec():
    assert generate_code_template("python", None) == "# Your code here"
    assert generate_code_template("javascript", {}) == "// Your code here"
    assert "public class Solution" in generate_code_template("java", None)


def test_java_nested_array_types():
    assert java_type("string[][]") == "String[][]"
    assert java_type(None) == "int"


def test_java_dropped_for_object_return():
    values = [lang["value"] for lang in supported_languages({"return_type": "object"})]
    assert values == ["python", "javascript"]
    assert len(supported_languages(SPEC)) == 3


def test_language_for_extension():
    assert language_for_extension(".py") == "python"
    assert language_for_extension("JS") == "javascript"
    assert language_for_extension(".cpp") is None


def test_normalize_draft_text():
    assert normalize_draft_text("a\r\nb\r\n  ") == "a\nb"
    assert normalize_draft_text(None) == ""
