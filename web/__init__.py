"""
Web application package for the chess playground.

Provides a FastAPI JSON API over the turn controller and a chessboard.js
frontend for playing in a browser. Run with: uvicorn web.app:app
"""
