"""Agent execution engine: step-based agentic coding loop over a remote repository."""
