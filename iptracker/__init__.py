# iptracker/__init__.py
"""
Keep this file minimal so 'iptracker' is always a proper package.

Do NOT import submodules here (e.g., don't import main).
Tests and runtime should import from 'iptracker.main' directly:
    from iptracker.main import create_app
And Uvicorn should use:
    uvicorn iptracker.main:app
"""
