from gevent import monkey

monkey.patch_all()

from quiztime import create_app  # noqa: E402
from gevent.pywsgi import WSGIServer  # noqa: E402
import os  # noqa: E402

app = create_app()

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 4000))
    http_server = WSGIServer(('0.0.0.0', port), app)
    http_server.serve_forever()
