"""Gmail Labeler package.

Objective:
    Provide a Python implementation of a Gmail triage workflow:
    - Page through unlabeled Gmail messages using the Gmail REST API.
    - Classify each message into one of ten fixed categories using a Groq LLM.
    - Apply the matching Gmail label without archiving or marking as read.

Key modules:
    - :mod:`src.gmail_labeler.config`:
        Category model and environment-driven settings.
    - :mod:`src.gmail_labeler.gmail_client`:
        Gmail API wrapper for messages and labels.
    - :mod:`src.gmail_labeler.classifier`:
        Prompt construction, Groq calls, reply validation.
    - :mod:`src.gmail_labeler.label_resolver`:
        Run-scoped label cache, label lookup and creation.
    - :mod:`src.gmail_labeler.batch_processor`:
        One page of fetch, classify and label work.
    - :mod:`src.gmail_labeler.orchestrator`:
        Multi-batch runs with cooperative cancellation.
    - :mod:`src.gmail_labeler.cli` / :mod:`src.gmail_labeler.webapp`:
        User-facing entrypoints.
"""

__version__ = "0.1.0"
