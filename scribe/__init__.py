"""
Scribe analysis core package.

This package tracks the progress of the remote document-analysis pipeline
(upload, content analysis, study guide, flashcards, worksheet, cleanup) for a
workspace. It exposes the step model and event types, a reducer that folds
unordered and repeated channel events into one consistent progress state, a
channel session that owns the workspace subscription, and a monitor that UI
layers observe.
"""
