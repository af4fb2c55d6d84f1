from tapgame import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # Use SocketIO server so kiosk websockets work in dev
    socketio.run(app, debug=True)
