import eventlet
eventlet.monkey_patch()

import argparse
from dice_duel import create_app

print("[run.py] Eventlet monkey-patch applied.")

app, socketio = create_app()

if __name__ == '__main__':

    parser = argparse.ArgumentParser(description='Run the Flask-SocketIO dice duel server.')

    parser.add_argument(
        '-e', '--env',
        default='local',
        choices=['local', 'prod'],
        help='Run mode: local (development) or prod (production server). Default: local.'
    )

    args = parser.parse_args()

    if args.env == 'prod':
        print("[run.py] Starting in PRODUCTION mode (prod) on 0.0.0.0:5000...")

        socketio.run(app,
                     host='0.0.0.0',
                     port=5000,
                     debug=False
                    )

    else:
        print("[run.py] Starting in LOCAL mode (dev) on 127.0.0.1:4999...")
        print("[run.py] Debug mode enabled (debug=True).")

        socketio.run(app,
                     host='127.0.0.1',
                     port=4999,
                     debug=True,
                     allow_unsafe_werkzeug=True  # needed for debug=True under eventlet
                    )
