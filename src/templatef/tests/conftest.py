"""
测试公共夹具
"""
import json
from pathlib import Path
from typing import Dict

import pytest

PACKAGE_JSON = {
    "name": "my-app",
    "version": "1.0.0",
    "description": "A demo app",
    "author": {"name": "Jane Doe"},
}

BINARY_LOG = b"\xff\xfe\x00\x01binary"


def write_files(root: Path, files: Dict[str, object]) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


def snapshot(root: Path, skip=(".template-undo.json",)) -> Dict[str, bytes]:
    """相对路径 → 内容；目录记为 None"""
    result = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        if rel in skip:
            continue
        result[rel] = None if path.is_dir() else path.read_bytes()
    return result


@pytest.fixture
def node_project(tmp_path):
    """创建一个典型的 Node 项目"""
    root = tmp_path / "my-app"
    root.mkdir()
    write_files(root, {
        "package.json": json.dumps(PACKAGE_JSON, indent=2) + "\n",
        "README.md": "# My App\n\nmy-app by Jane Doe\n",
        "src/index.js": "console.log('hello');\n",
        "node_modules/lodash/index.js": "module.exports = {};\n",
        "package-lock.json": "{}\n",
        ".env": "SECRET=abc\n",
        "dist/bundle.js": "bundle();\n",
        "debug.log": BINARY_LOG,
    })
    return root


@pytest.fixture
def take_snapshot():
    return snapshot


@pytest.fixture
def make_files():
    return write_files
