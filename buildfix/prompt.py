def ask_yes_no(question, reader=input):
    """Ask a [y/N] question. Anything but y/yes is a no."""
    try:
        answer = reader(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")
