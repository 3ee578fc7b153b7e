"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def fake_server() -> Path:
    """记录 stdin 的假服务器脚本。"""
    return FIXTURES_DIR / "fake_server.py"


@pytest.fixture
def fifo_path(tmp_path: Path) -> Path:
    """临时目录下的控制通道路径（尚未创建）。"""
    return tmp_path / "minecraft.control"
