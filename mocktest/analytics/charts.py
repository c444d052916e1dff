"""
Analysis charts rendered to base64 data URIs for the analysis page.
"""

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for server

import base64
from io import BytesIO
from typing import Dict

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from mocktest.analytics.stats import SectionStats
from mocktest.logger import setup_logger
from mocktest.utils.exceptions import AnalysisError

logger = setup_logger(__name__)

sns.set_theme(style="whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 100

OUTCOME_COLORS = {"Correct": "#16a34a", "Wrong": "#dc2626", "Unattempted": "#9ca3af"}


def _encode_figure(fig: plt.Figure) -> str:
    """PNG data URI; the figure is always closed."""
    try:
        buffer = BytesIO()
        fig.savefig(buffer, format="png", bbox_inches="tight", pad_inches=0.1)
        encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")
        logger.debug(f"Figure encoded: {len(encoded) / 1024:.1f}KB")
        return f"data:image/png;base64,{encoded}"
    except Exception as e:
        raise AnalysisError(f"Figure encoding failed: {e}")
    finally:
        plt.close(fig)


def section_marks_chart(sections: Dict[str, SectionStats]) -> str:
    """Marks scored vs. maximum, one bar pair per section."""
    logger.info(f"📊 Creating section marks chart ({len(sections)} sections)")
    df = pd.DataFrame(
        [
            {"section": name, "kind": kind, "marks": value}
            for name, stats in sections.items()
            for kind, value in (("Scored", stats.marks), ("Maximum", stats.max_marks))
        ],
        columns=["section", "kind", "marks"],
    )

    fig, ax = plt.subplots(figsize=(10, 6))
    if not df.empty:
        sns.barplot(data=df, x="section", y="marks", hue="kind", ax=ax)
    ax.set_title("Marks by Section")
    ax.set_xlabel("Section")
    ax.set_ylabel("Marks")
    return _encode_figure(fig)


def question_time_chart(questions: pd.DataFrame) -> str:
    """Seconds spent per question, coloured by subject."""
    logger.info(f"📈 Creating question time chart ({len(questions)} questions)")
    fig, ax = plt.subplots(figsize=(12, 6))
    if not questions.empty:
        sns.lineplot(
            data=questions,
            x="question",
            y="time_spent",
            hue="subject",
            marker="o",
            ax=ax,
        )
    ax.set_title("Time Spent per Question")
    ax.set_xlabel("Question")
    ax.set_ylabel("Seconds")
    return _encode_figure(fig)


def outcome_chart(questions: pd.DataFrame) -> str:
    """Share of correct, wrong and unattempted questions."""
    counts = questions["outcome"].value_counts() if not questions.empty else pd.Series(dtype=int)
    counts = counts[counts > 0]
    logger.info(f"🥧 Creating outcome chart: {counts.to_dict()}")

    fig, ax = plt.subplots(figsize=(6, 6))
    if counts.empty:
        ax.text(0.5, 0.5, "No questions", ha="center", va="center")
        ax.axis("off")
    else:
        ax.pie(
            counts.values,
            labels=counts.index,
            colors=[OUTCOME_COLORS.get(label, "#6b7280") for label in counts.index],
            autopct="%1.1f%%",
            startangle=90,
        )
    ax.set_title("Question Outcomes")
    return _encode_figure(fig)
