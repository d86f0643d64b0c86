from meetnotes.main import create_app

app = create_app()
