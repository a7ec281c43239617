"""Prompt builders for enrichment calls."""

from __future__ import annotations

from pulsewire.ingestion.content_types import Category


def title_summary_prompt(title: str) -> str:
    return f"""{{{title}}} <- headline

Rewrite the headline above as one very short sentence that keeps only the core point.
Output the sentence only."""


def content_summary_prompt(content: str) -> str:
    return f"""{{{content}}}

Summarize the text above in exactly 3 lines for readers who follow the tech industry.
Keep each line short and readable.
Number the lines "1.", "2.", "3." and output nothing else."""


def detail_prompt(summary_line: str, content: str) -> str:
    return (
        "Below is a news article and one sentence summarizing part of it.\n\n"
        f"[Article]\n{content}\n\n"
        f"[Summary sentence]\n{summary_line}\n\n"
        "Using the article, explain the summary sentence in at most 4 concise lines.\n"
        "Output the explanation only."
    )


def _category_block() -> str:
    return "\n".join(f"{c.value}. {c.label} : {c.description}" for c in Category)


def category_prompt(title: str, summary: str) -> str:
    return f"""Below are the title and summary of an AI news article. Pick the single category number (1-5) it belongs to and answer with the number only.

[Categories]
{_category_block()}

Classify narrowly: if the article does not clearly fit 1-4, answer 5.

[Title]
{title}

[Summary]
{summary}

Category number (1-5) only: """


def post_category_prompt(text: str) -> str:
    return f"""Below is a social media post. Pick the single category number (1-5) it belongs to and answer with the number only.

[Categories]
{_category_block()}

Classify narrowly: if the post does not clearly fit 1-4, answer 5.

[Post]
{text}

Category number (1-5) only: """


def relevance_prompt(text: str) -> str:
    return f"""Decide, interpreting broadly, whether the text below is about AI or recent technology
(machine learning, language models, software development, startups and tech companies,
research, tech policy, robotics, cloud, security, data science, VR/AR, quantum computing).
Only everyday personal matters, politics, sports and entertainment count as NO.

Answer YES or NO only.

Text: "{text}\""""


def translation_prompt(text: str, target_language: str = "Korean") -> str:
    return f"""Translate the following social media post into natural {target_language}.
Keep the original tone, and break lines so it reads well on mobile.
Leave any text of the form __LINK_<number>__ exactly as it is.

Original: {text}"""
