# src/app.py          <-- keep it at the top level of the ZIP
# Handler path:  app.handler
#
# Thin shim so the Lambda handler setting stays stable while the real
# implementation lives in the presigned_url_refresher package.

from presigned_url_refresher.app import handler

__all__ = ["handler"]
