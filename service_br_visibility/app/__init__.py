"""
BR Visibility extension.

Decides, for every line-break marker inside a live chat document,
whether it should be visually hidden, and re-applies that decision as
the host mutates the document. The engine is single-threaded and
callback-driven; runs are scheduled through a debounced, cancelable
timer and guarded against reentrancy.
"""
