"""
A tiny HTTP server to point the proxy at while trying it out.
"""

import flask

app = flask.Flask(__name__)


@app.route("/", defaults={"path": ""}, methods=["GET", "POST", "PUT"])
@app.route("/<path:path>", methods=["GET", "POST", "PUT"])
def serve(path):
    body = flask.request.get_data()
    return flask.Response(b"Serving...\n" + body, content_type="text/plain")


def run(address: tuple[str, int]) -> None:  # pragma: no cover
    host, port = address
    app.run(host=host or "0.0.0.0", port=port, threaded=True)
