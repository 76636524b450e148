"""Task orchestration and staged analysis pipeline."""
