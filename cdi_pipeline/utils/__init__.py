"""Small file helpers shared by the pipeline and the command line."""
