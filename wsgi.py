from attendance_sync import create_app

app = create_app()

# Run a single worker: the queue is a local SQLite file and the scheduler is
# started in-process, e.g. gunicorn -w 1 --threads 4 wsgi:app
