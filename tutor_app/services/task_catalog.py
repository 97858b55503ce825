"""
Built-in practice tasks.
Free accounts only ever see the demo tasks; premium accounts get the full catalog
plus AI-generated tasks.
"""
from typing import Dict, List, Optional

DEMO_WRITING_TASK: Dict = {
    "id": "demo-1",
    "mode": "WRITING",
    "type": "TASK_1_EMAIL",
    "title": "Writing Task 1: Email (Demo)",
    "instructions": "Read the following information.",
    "isDemo": True,
    "details": {
        "scenario": (
            "You recently visited a local hospital to visit a friend. However, you were very unhappy "
            "with the level of cleanliness and the behavior of the staff."
        ),
        "bulletPoints": [
            "Describe the purpose of your visit.",
            "Explain the problems you encountered.",
            "Suggest improvements.",
        ],
    },
}

DEMO_SPEAKING_TASK: Dict = {
    "id": "demo-speaking-1",
    "mode": "SPEAKING",
    "type": "SPEAKING_TASK_1",
    "title": "Task 1: Giving Advice (Demo)",
    "instructions": "A friend is looking for a job.",
    "isDemo": True,
    "details": {
        "prompt": "Your friend Tom is looking for a new job but doesn't know where to start. Give him advice.",
        "preparationTime": 60,
        "speakingTime": 90,
    },
}

PREMIUM_TASKS: List[Dict] = [
    {
        "id": "t1-1",
        "mode": "WRITING",
        "type": "TASK_1_EMAIL",
        "title": "Writing Task 1: Email (#1)",
        "instructions": "Read the following information.",
        "details": {
            "scenario": (
                "You recently visited a local hospital to visit a friend. However, you were very unhappy "
                "with the level of cleanliness and the behavior of the staff."
            ),
            "bulletPoints": [
                "Describe the purpose of your visit.",
                "Explain the problems you encountered.",
                "Suggest improvements.",
            ],
        },
    },
    {
        "id": "t1-2",
        "mode": "WRITING",
        "type": "TASK_1_EMAIL",
        "title": "Writing Task 1: Email (#2)",
        "instructions": "Read the following information.",
        "details": {
            "scenario": (
                "You ordered a laptop online two weeks ago, but it arrived damaged. You have tried "
                "contacting customer service multiple times without success."
            ),
            "bulletPoints": [
                "Describe what you ordered and when.",
                "Explain the damage and your attempts to resolve the issue.",
                "State what action you expect them to take.",
            ],
        },
    },
    {
        "id": "t2-1",
        "mode": "WRITING",
        "type": "TASK_2_SURVEY",
        "title": "Writing Task 2: Survey (#1)",
        "instructions": "Read the following information.",
        "details": {
            "surveyContext": "City Development Survey: How to spend surplus budget?",
            "optionA": {"label": "Option A: New Public Library", "description": "Modern library with digital archives."},
            "optionB": {"label": "Option B: Sports Center", "description": "New pool and gym equipment."},
        },
    },
    {
        "id": "t2-2",
        "mode": "WRITING",
        "type": "TASK_2_SURVEY",
        "title": "Writing Task 2: Survey (#2)",
        "instructions": "Read the following information.",
        "details": {
            "surveyContext": "Company Policy Survey: Remote work options for employees?",
            "optionA": {"label": "Option A: Full Remote Work", "description": "Employees can work from home 5 days a week."},
            "optionB": {"label": "Option B: Hybrid Model", "description": "3 days in office, 2 days remote."},
        },
    },
    {
        "id": "s1-1",
        "mode": "SPEAKING",
        "type": "SPEAKING_TASK_1",
        "title": "Task 1: Giving Advice (#1)",
        "instructions": "A friend is looking for a job.",
        "details": {
            "prompt": "Your friend Tom is looking for a new job but doesn't know where to start. Give him advice.",
            "preparationTime": 60,
            "speakingTime": 90,
        },
    },
    {
        "id": "s2-1",
        "mode": "SPEAKING",
        "type": "SPEAKING_TASK_2",
        "title": "Task 2: Personal Experience (#1)",
        "instructions": "Talk about a personal experience.",
        "details": {
            "prompt": "Talk about a time when you helped someone in need. What happened and how did you feel?",
            "preparationTime": 60,
            "speakingTime": 60,
        },
    },
    {
        "id": "s6-1",
        "mode": "SPEAKING",
        "type": "SPEAKING_TASK_6",
        "title": "Task 6: Difficult Situation (#1)",
        "instructions": "Handle a difficult situation.",
        "details": {
            "prompt": "Your cousin wants to stay at your place for a year, but your roommate disagrees.",
            "preparationTime": 60,
            "speakingTime": 60,
            "difficultSituationOptions": {
                "option1": "Talk to your cousin. Explain why she cannot stay.",
                "option2": "Talk to your roommate. Explain why your cousin should stay.",
            },
        },
    },
    {
        "id": "s7-1",
        "mode": "SPEAKING",
        "type": "SPEAKING_TASK_7",
        "title": "Task 7: Opinion (#1)",
        "instructions": "Express your opinion.",
        "details": {
            "prompt": "Do you think social media has a negative impact on society? Explain your opinion.",
            "preparationTime": 60,
            "speakingTime": 90,
        },
    },
]


def find_premium_task(task_type: str) -> Optional[Dict]:
    return next((t for t in PREMIUM_TASKS if t["type"] == task_type), None)
