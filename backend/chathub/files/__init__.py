"""Attachment upload side-channel for the chat hub.

Files are uploaded over HTTP before being referenced from a chat message;
the hub only ever sees the resulting ``{url, filename, size, mimetype}``.
Files are stored on local disk under the configured upload directory and
their metadata is tracked in DuckDB.

Supported file types:
- Images: jpg, jpeg, png, gif
- Documents: pdf, doc, docx, txt
- Anything up to the configured size limit (10MB by default)
"""
