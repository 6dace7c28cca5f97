"""
Application constants.
Task kinds, priorities, activity actions and default values.
"""

# Task kinds (single-table discriminator)
TASK_KIND_HABIT = "habit"
TASK_KIND_DAILY = "daily"
TASK_KIND_TODO = "todo"
TASK_KINDS = (TASK_KIND_HABIT, TASK_KIND_DAILY, TASK_KIND_TODO)

# Priorities
PRIORITY_TRIVIAL = "trivial"
PRIORITY_EASY = "easy"
PRIORITY_MEDIUM = "medium"
PRIORITY_HARD = "hard"
DEFAULT_PRIORITY = PRIORITY_EASY

# Reward / penalty magnitude per priority (penalties use the same table)
PRIORITY_MAGNITUDES = {
    PRIORITY_TRIVIAL: 1,
    PRIORITY_EASY: 2,
    PRIORITY_MEDIUM: 5,
    PRIORITY_HARD: 10,
}

# Habit scoring directions
DIRECTION_UP = "up"
DIRECTION_DOWN = "down"

# Activity log actions
ACTION_SCORED_UP = "scored_up"
ACTION_SCORED_DOWN = "scored_down"
ACTION_COMPLETED = "completed"
ACTION_UNCOMPLETED = "uncompleted"
ACTION_MISSED = "missed"

# Sweep run statuses
SWEEP_STATUS_RUNNING = "running"
SWEEP_STATUS_COMPLETED = "completed"
SWEEP_STATUS_PARTIAL = "partial"

# User defaults
DEFAULT_LEVEL = 1
DEFAULT_MAX_HEALTH = 50
EXPERIENCE_PER_LEVEL_STEP = 50  # Level L -> L+1 costs 50 * L experience

# Dailies: index 0 = Sunday
WEEKDAY_COUNT = 7
ALL_WEEKDAYS = [True] * WEEKDAY_COUNT

# Todo bonus for completing on or before due date
DEFAULT_TODO_ON_TIME_BONUS = 2

# Activity listing
DEFAULT_ACTIVITY_LIMIT = 50
MAX_ACTIVITY_LIMIT = 500

# Reminders
DEFAULT_REMINDER_WINDOW_HOURS = 2

# Logging
DEFAULT_LOG_DIRECTORY_PROD = "/var/log/taskquest"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"

# CORS
CORS_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]
