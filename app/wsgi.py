from app.staffhub import create_app

app = create_app()
