"""Agent-facing descriptions for the todo tools."""

READ_DESCRIPTION = """\
Read the current todo list for this session. Check it often so you stay aware of \
what is pending, in progress and done.

<when-to-use>
- At the start of a conversation, to pick up pending work
- Before starting a new task, to prioritise
- When the user asks about earlier tasks or plans
- When unsure what to do next
- After finishing a task, to see what remains
</when-to-use>

<usage-notes>
- Takes no parameters
- Returns JSON with the list title and the todos (id, content, status, priority, details)
- An empty list means nothing is planned yet: use todo_write to plan the requested work
</usage-notes>"""

_WRITE_INTRO = """\
Create and maintain a structured todo list for the current session. The list \
tracks progress on multi-step work and shows the user what you are doing.

<when-to-use>
- Tasks with 3 or more distinct steps, or spanning several files
- The user gives several tasks, or asks for a todo list
- New instructions arrive: capture them as todos right away
- Starting a task: mark it in_progress BEFORE beginning
- Finishing a task: mark it completed and add any follow-ups
Skip for single trivial tasks and purely conversational requests.
</when-to-use>

<workflow-rules>
- Only ONE task may be in_progress at any time
- Mark in_progress before starting, completed immediately when done
- Keep a blocked task in_progress and explain the blocker in details
</workflow-rules>

<parameter-guidance>
  <todos>The complete list; it REPLACES the existing one, so include every todo you want to keep</todos>
  <id>kebab-case verb-noun, e.g. "implement-auth"</id>
  <content>Specific, actionable description</content>
  <status>pending / in_progress / completed</status>
  <priority>high (urgent/blocking), medium (important), low (nice-to-have)</priority>
  <details>Rationale: decisions, trade-offs, blockers, implementation notes</details>"""

_SUBTASKS_GUIDANCE = """
  <subtasks>Smaller steps of a complex task; use for tasks with 3+ phases</subtasks>"""

_WRITE_FOOTER = """
  <title>Name of the whole list (project, feature or sprint). Renaming a list archives the previous one.</title>
</parameter-guidance>

<critical-warning>
This tool replaces the entire list. Use todo_read first if you are unsure what it contains.
</critical-warning>"""


def build_write_description(subtasks_enabled: bool) -> str:
    """Compose the todo_write description; subtask guidance is optional."""
    return (
        _WRITE_INTRO
        + (_SUBTASKS_GUIDANCE if subtasks_enabled else "")
        + _WRITE_FOOTER
    )
