"""Maps tool names and analysis step names to the icons shown in the log stream."""

from __future__ import annotations

# Tool name -> icon
_TOOL_ICONS: dict[str, str] = {
    "readFile": "📖",
    "writeFile": "✏️",
    "editFile": "📝",
    "listDirectory": "📁",
    "analyzeProject": "🔍",
    "scaffoldProject": "🏗️",
    "smartEdit": "🧠",
}

_DEFAULT_TOOL_ICON = "⚙️"

# Analysis step name -> icon
_ANALYSIS_ICONS: dict[str, str] = {
    "Task Analysis": "🧠",
    "Requirement Understanding": "💡",
    "Execution Plan": "📋",
    "Technology Selection": "🔧",
    "Architecture Design": "🏗️",
    "File Planning": "📁",
    "Code Generation": "💻",
    "Test Verification": "✅",
}

# Step names emitted by Chinese-language planners -> English step name
_STEP_ALIASES: dict[str, str] = {
    "任务分析": "Task Analysis",
    "需求理解": "Requirement Understanding",
    "执行计划": "Execution Plan",
    "技术选型": "Technology Selection",
    "架构设计": "Architecture Design",
    "文件规划": "File Planning",
    "代码生成": "Code Generation",
    "测试验证": "Test Verification",
}

_DEFAULT_ANALYSIS_ICON = "🔍"


def get_tool_icon(tool_name: str) -> str:
    """Return the icon for a tool name.

    Unknown tools get the generic gear icon.
    """
    return _TOOL_ICONS.get(tool_name, _DEFAULT_TOOL_ICON)


def get_analysis_icon(step_name: str) -> str:
    """Return the icon for an analysis step; unknown steps get a magnifier."""
    step_name = _STEP_ALIASES.get(step_name, step_name)
    return _ANALYSIS_ICONS.get(step_name, _DEFAULT_ANALYSIS_ICON)
