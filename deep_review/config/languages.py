"""
Language-specific file filters and reviewer role descriptors
"""

from typing import Dict, List, Optional

LANGUAGE_FILE_CONFIGS: Dict[str, Dict[str, object]] = {
    "js": {
        "extensions": [".js", ".jsx", ".ts", ".tsx", ".mjs"],
        "name": "JavaScript/TypeScript",
    },
    "python": {
        "extensions": [".py", ".pyw", ".pyx", ".pyi"],
        "name": "Python",
    },
    "java": {
        "extensions": [".java"],
        "name": "Java",
    },
    "php": {
        "extensions": [".php"],
        "name": "PHP",
    },
}

LANGUAGE_ROLE_CONFIGS: Dict[str, Dict[str, str]] = {
    "js": {
        "role": "frontend engineer",
        "language": "JavaScript/TypeScript",
        "test_example": " (e.g., RTL/jest/vitest).",
        "file_example": "src/components/Table.tsx",
    },
    "python": {
        "role": "Python engineer",
        "language": "Python",
        "test_example": " (e.g., pytest)",
        "file_example": "app/services/user_service.py",
    },
    "java": {
        "role": "Java engineer",
        "language": "Java",
        "test_example": " (e.g., JUnit + MockMvc)",
        "file_example": "src/main/java/com/example/user/UserService.java",
    },
    "php": {
        "role": "PHP engineer",
        "language": "PHP",
        "test_example": " (e.g., Pest/PHPUnit feature test)",
        "file_example": "app/Http/Controllers/UserController.php",
    },
}

# Markdown fence languages for snippets in the review comment
_FENCE_LANGUAGES = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".pyw": "python",
    ".pyx": "python",
    ".pyi": "python",
    ".java": "java",
    ".php": "php",
}


def get_language_extensions(language: str) -> Optional[List[str]]:
    """Return the file extensions reviewed for a language, or None if unknown"""
    config = LANGUAGE_FILE_CONFIGS.get(language)
    if config is None:
        return None
    return list(config["extensions"])  # type: ignore[arg-type]


def get_language_for_file(file_path: Optional[str]) -> str:
    """Map a file path to a Markdown code fence language"""
    if not file_path:
        return ""
    for extension, fence in _FENCE_LANGUAGES.items():
        if file_path.endswith(extension):
            return fence
    return ""
