from quiztime import create_app
from quiztime.utils.importer import import_questions

app = create_app()
with app.app_context():
    added = import_questions()
    print(f"Questions populated successfully! ({added} added)")
