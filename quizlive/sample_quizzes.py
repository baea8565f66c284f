from quizlive.models import Quiz


SAMPLE_QUIZ_PIN = 'DEMO01'

SAMPLE_QUIZ = {
    'id': 'sample1',
    'title': 'General Knowledge Quiz',
    'pin': SAMPLE_QUIZ_PIN,
    'questions': [
        {
            'id': 'q1',
            'text': 'What is the capital of France?',
            'options': ['London', 'Berlin', 'Paris', 'Madrid'],
            'correctAnswer': 2,
            'timeLimit': 20,
        },
        {
            'id': 'q2',
            'text': 'Which planet is known as the Red Planet?',
            'options': ['Venus', 'Mars', 'Jupiter', 'Saturn'],
            'correctAnswer': 1,
            'timeLimit': 15,
        },
        {
            'id': 'q3',
            'text': 'What is 7 x 8?',
            'options': ['54', '56', '58', '52'],
            'correctAnswer': 1,
            'timeLimit': 10,
        },
    ],
}


def seed_sample_sessions(registry):
    """Preload the demo quiz as a headless session a host can attach to."""
    return [registry.create(Quiz.from_dict(SAMPLE_QUIZ), SAMPLE_QUIZ_PIN)]
