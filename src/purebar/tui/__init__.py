"""Textual dashboard for purebar (install the ``tui`` extra)."""

from purebar.tui.app import PurebarApp, run_tui

__all__ = ["PurebarApp", "run_tui"]
