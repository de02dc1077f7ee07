from . import (
    availability as availability,
    health as health,
    mentors as mentors,
    payments as payments,
    prometheus as prometheus,
    sessions as sessions,
    webhooks as webhooks,
)
