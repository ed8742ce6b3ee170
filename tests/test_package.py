import ast
from pathlib import Path

import current_control


def test_modules_use_absolute_package_imports():
    package_dir = Path(current_control.__file__).parent
    for path in sorted(package_dir.glob("*.py")):
        tree = ast.parse(path.read_text(encoding="utf-8"))
        relative = [
            node.lineno
            for node in ast.walk(tree)
            if isinstance(node, ast.ImportFrom) and node.level > 0
        ]
        assert relative == [], f"{path.name} has relative imports at lines {relative}"
