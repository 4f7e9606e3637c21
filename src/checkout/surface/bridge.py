"""
Script injected into the embedded checkout surface.

It forwards the gateway's own postMessage events to the host, turns
``window.close()`` into a legacy ``payment_success`` message and polls the
location for the close page / callback URL once a second.
"""

import json
from typing import Iterable

_TEMPLATE = """
(function() {
  var reference = %(reference)s;
  var markers = %(markers)s;
  var post = function(payload) {
    window.ReactNativeWebView.postMessage(JSON.stringify(payload));
  };

  window.addEventListener('message', function(event) {
    if (event.data && typeof event.data === 'object') {
      post(event.data);
    }
  });

  window.close = function() {
    post({ type: 'payment_success', reference: reference });
  };

  setInterval(function() {
    var url = window.location.href;
    // Cancel redirects are left to navigation classification.
    if (url.toLowerCase().indexOf('cancel') !== -1) {
      return;
    }
    for (var i = 0; i < markers.length; i++) {
      if (url.indexOf(markers[i]) !== -1) {
        post({ type: 'payment_success', reference: reference });
        return;
      }
    }
  }, 1000);

  true;
})();
"""


def build_bridge_script(reference: str, completion_markers: Iterable[str]) -> str:
    return _TEMPLATE % {
        "reference": json.dumps(reference or ""),
        "markers": json.dumps(list(completion_markers)),
    }
