"""Scene Stage — interpreter for model-written visual-novel scene markup."""
