import os

from livequiz import create_app, socketio

app = create_app()

if __name__ == '__main__':
    host = os.environ.get('LIVEQUIZ_HOST', '0.0.0.0')
    port = int(os.environ.get('LIVEQUIZ_PORT', '5000'))
    app.logger.info(f"[startup] host={host} port={port} namespace=/quiz")
    # Socket.IO server so websockets work in dev
    socketio.run(app, host=host, port=port, debug=os.environ.get('FLASK_DEBUG') == '1')
