"""WSGI entry point for the canvas service."""
from app.server import create_app

app, socketio = create_app()

if __name__ == "__main__":
    config = app.config['CANVAS']
    socketio.run(app, host=config['HOST'], port=config['PORT'], debug=False, allow_unsafe_werkzeug=True)
