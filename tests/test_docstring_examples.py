import ast
from pathlib import Path

_DOCUMENTED_MODULES = ("codec.py", "executor.py")


def _python_files() -> list[Path]:
    root = Path(__file__).resolve().parents[1] / "src" / "engine_gateway"
    return [root / name for name in _DOCUMENTED_MODULES]


def test_codec_and_executor_functions_have_docstring_with_example() -> None:
    missing: list[str] = []
    missing_example: list[str] = []

    for file_path in _python_files():
        module = ast.parse(file_path.read_text(encoding="utf-8"))
        for node in ast.walk(module):
            if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                continue
            doc = ast.get_docstring(node)
            location = f"{file_path.name}:{node.lineno}:{node.name}"
            if not doc:
                missing.append(location)
                continue
            if "Example:" not in doc:
                missing_example.append(location)

    assert not missing, "Missing function docstrings:\n" + "\n".join(missing)
    assert not missing_example, "Docstrings without Example section:\n" + "\n".join(
        missing_example
    )
