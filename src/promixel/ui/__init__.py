"""Terminal UI layer: Gradio app, command interpreter and client request guard."""
