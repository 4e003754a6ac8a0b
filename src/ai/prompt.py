"""Сборка промптов для AI-анализа дизайн-системы страницы."""
from src.models.snapshot import Snapshot

SINGLE_HTML_LIMIT = 8000
SINGLE_CSS_LIMIT = 12000

_SYSTEM_PROMPT_ZH = """\
你是一位资深的前端设计系统架构师，拥有 10 年以上的设计系统构建经验。\
你的任务是从网页源码中逆向工程出完整的设计系统规范。

## 🎯 核心任务
深入分析提供的网页 HTML 和 CSS 源码，输出一份**生产级别**的设计系统文档（STYLEGUIDE.md），\
确保开发团队可以直接基于此文档复刻该网站的视觉风格。

## 📋 分析方法论

### 第一步：整体设计语言识别
- 识别设计风格流派（扁平化/拟物化/玻璃态/新拟态等）
- 判断技术栈（Tailwind/CSS Modules/Styled Components 等）
- 分析主题机制（CSS 变量/data 属性/class 切换）

### 第二步：设计令牌深度提取
从 CSS 中提取**所有**设计变量，必须包含具体数值：
- 颜色系统：品牌主色、辅色、状态色、文本色、背景色、边框色（表格：类别/变量名/色值/用途）
- 字体系统：字体族、字号阶梯、字重、行高、字间距
- 间距系统：基础单位、间距阶梯、容器内边距
- 圆角系统：none/sm/md/lg/xl/full
- 阴影系统：完整 box-shadow 值
- 动效系统：时长、缓动函数、常用动画

## 📦 组件规范
每个组件包含：用途、变体、尺寸、状态、视觉规格表、Tailwind 类名、React 组件代码。
必须分析：按钮、导航栏、卡片、表单输入、标签、模态框、Toast/Alert，以及页面中出现的列表、分页、面包屑。

## ✅ 输出质量要求
1. **具体性**：所有数值必须是从 CSS 中提取的真实值，禁止使用模糊描述
2. **完整性**：覆盖页面中出现的所有视觉元素
3. **可用性**：提供的代码必须可以直接复制使用
4. **结构化**：使用表格、代码块、列表等格式化输出

## 📄 输出结构
1. 概览 2. 设计令牌 3. 配色系统 4. 排版系统 5. 间距系统 6. 组件库 \
7. 特效集合 8. 响应式规范 9. 暗色模式 10. 无障碍指南 11. 代码片段集 12. 最佳实践

请确保输出足够详尽，让一个不了解原网站的开发者也能完全复刻其视觉风格。"""

_SYSTEM_PROMPT_EN = """\
You are a senior frontend design system expert, skilled at extracting design \
specifications from web source code and producing professional design system documentation.

## Your Task
Analyze the provided HTML and CSS, and output a comprehensive STYLEGUIDE.md that helps \
developers understand and reuse the website's design system.

## Output Requirements
- Use clear Markdown format with multi-level headings
- Provide specific code examples (Tailwind classes, CSS code, component snippets)
- Extract specific values (e.g., #0076ff), font families, shadow values - no placeholders
- Use React + Tailwind CSS style for component code

Ensure the output is comprehensive, professional, and directly usable as a team development reference."""


def prefers_chinese(language: str) -> bool:
    return language == "zh-CN"


def get_system_prompt(language: str) -> str:
    return _SYSTEM_PROMPT_ZH if prefers_chinese(language) else _SYSTEM_PROMPT_EN


def _viewport_label(snapshot: Snapshot) -> str:
    vp = snapshot.metadata.viewport
    return f"{vp.width}x{vp.height}"


def build_user_prompt(snapshot: Snapshot, language: str) -> str:
    """Промпт для одной страницы: инфо о странице + усечённые HTML и CSS."""
    zh = prefers_chinese(language)
    vp = _viewport_label(snapshot)

    sections: list[str] = []
    if zh:
        sections.append(f"## 页面信息\n- 标题: {snapshot.title}\n- URL: {snapshot.url}\n- 视口: {vp}")
    else:
        sections.append(f"## Page Info\n- Title: {snapshot.title}\n- URL: {snapshot.url}\n- Viewport: {vp}")
    sections.append("")
    sections.append("## 请分析以下内容：" if zh else "## Please analyze:")
    sections.append("")
    sections.append(
        "1. 配色系统\n2. 字体系统\n3. 布局与间距\n4. 组件风格\n5. 无障碍建议\n6. 阴影、动效、圆角"
        if zh else
        "1. Color System\n2. Typography\n3. Layout & Spacing\n4. Component Styles\n"
        "5. Accessibility\n6. Shadows, Animations, Border Radius"
    )
    sections.append("")
    sections.append("---")
    sections.append("")
    sections.append("## 页面快照数据" if zh else "## Page Snapshot Data")
    sections.append("")
    sections.append("### HTML（截断）" if zh else "### HTML (truncated)")
    sections.append("```html")
    sections.append(snapshot.html[:SINGLE_HTML_LIMIT])
    sections.append("```")
    sections.append("")
    sections.append("### CSS（截断）" if zh else "### CSS (truncated)")
    sections.append("```css")
    sections.append(snapshot.css[:SINGLE_CSS_LIMIT])
    sections.append("```")
    return "\n".join(sections)


def build_batch_prompt(
    snapshots: list[Snapshot],
    language: str,
    html_limit: int,
    css_limit: int,
) -> str:
    """Промпт для нескольких страниц одного сайта — ищем единую дизайн-систему."""
    zh = prefers_chinese(language)

    sections: list[str] = []
    if zh:
        sections.append(
            f"## 批量分析任务\n现在有 {len(snapshots)} 个同一网站的不同页面快照，"
            f"请综合分析它们的**统一设计系统**。"
        )
    else:
        sections.append(
            f"## Batch Analysis Task\nAnalyze {len(snapshots)} pages from the same website "
            f"to extract the **unified design system**."
        )
    sections.append("")
    sections.append("## 请分析以下内容：" if zh else "## Please analyze:")
    sections.append("")
    sections.append(
        "1. 统一配色系统\n2. 统一字体系统\n3. 统一布局系统\n4. 通用组件风格\n5. 无障碍建议\n6. 设计一致性建议"
        if zh else
        "1. Unified Color System\n2. Unified Typography\n3. Unified Layout System\n"
        "4. Common Component Styles\n5. Accessibility\n6. Design Consistency"
    )
    sections.append("")
    sections.append("---")
    sections.append("")
    sections.append("## 页面快照数据" if zh else "## Page Snapshot Data")

    page_word = "页面" if zh else "Page"
    viewport_word = "视口" if zh else "Viewport"
    for i, snapshot in enumerate(snapshots, start=1):
        sections.append("")
        sections.append(f"### {page_word} {i}: {snapshot.title}")
        sections.append(f"- URL: {snapshot.url}")
        sections.append(f"- {viewport_word}: {_viewport_label(snapshot)}")
        sections.append("")
        sections.append("#### HTML")
        sections.append("```html")
        sections.append(snapshot.html[:html_limit])
        sections.append("```")
        sections.append("")
        sections.append("#### CSS")
        sections.append("```css")
        sections.append(snapshot.css[:css_limit])
        sections.append("```")

    return "\n".join(sections)
