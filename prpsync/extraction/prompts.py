"""
Prompt templates for PRP extraction.

All templates are filled with ``str.format``; literal braces in the JSON
skeletons are doubled.
"""

PRP_PARSING_PROMPT = """You are an expert at parsing Product Requirements Prompts (PRPs) from video content.

Given the following video transcript and metadata, extract a structured PRP following this exact format:

Video Title: {title}
Video Description: {description}
Channel: {channel}
Published: {published_at}

Transcript:
{transcript}

IMPORTANT: Return ONLY a valid JSON object (no markdown, no explanation, no code blocks) that matches this structure:

{{
  "name": "Short descriptive name for the PRP",
  "description": "Brief overview of what this PRP is about",
  "goal": "Clear statement of what needs to be built or achieved",
  "why": ["Business value point 1", "Business value point 2", "..."],
  "what": "Description of user-visible behavior and features",
  "success_criteria": ["Measurable outcome 1", "Measurable outcome 2", "..."],
  "context": {{
    "documentation": [
      {{"type": "url", "path": "https://example.com/docs", "why": "Reason for reference"}}
    ],
    "codebase_tree": "Optional file structure if mentioned",
    "gotchas": ["Potential issue 1", "Potential issue 2"]
  }},
  "tasks": [
    {{
      "title": "Task title",
      "description": "What needs to be done",
      "type": "create|modify|test|deploy|analyze|design|document|research|review|other",
      "file_path": "path/to/file.py (optional - use null if not mentioned)",
      "pseudocode": "Any code snippets or pseudocode mentioned (optional - use null if not mentioned)"
    }}
  ]
}}

Extract as much relevant information as possible from the transcript. If certain sections are not explicitly mentioned, infer reasonable values based on the content. Ensure all arrays have at least one item."""


EXTRACT_MORE_TASKS_PROMPT = """Given the following PRP (Product Requirements Prompt), extract {max_tasks} detailed implementation tasks.

PRP Name: {name}
Goal: {goal}
What: {what}

Existing tasks count: {existing_count}

Please provide {max_tasks} additional detailed tasks that would help implement this PRP. Focus on specific, actionable tasks.

Return ONLY a valid JSON array (no markdown, no explanation, no code blocks) with this structure:

[
  {{
    "title": "Specific task title",
    "description": "Detailed description of what needs to be done",
    "type": "create|modify|test|deploy|analyze|design|document|research|review|other",
    "file_path": "suggested/path/to/file.py (optional - use null if not applicable)",
    "pseudocode": "# Example implementation (optional - use null if not applicable)"
  }}
]"""


SUMMARIZE_PROMPT = """Provide a brief 2-3 sentence summary of this PRP:

Name: {name}
Goal: {goal}
Tasks: {task_count} tasks defined

Return only the summary text, no formatting, no markdown."""
