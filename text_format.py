import json

ESCAPE = "§"

COLOR_CODES = {
    "black": ESCAPE + "0",
    "dark_blue": ESCAPE + "1",
    "dark_green": ESCAPE + "2",
    "dark_aqua": ESCAPE + "3",
    "dark_red": ESCAPE + "4",
    "dark_purple": ESCAPE + "5",
    "gold": ESCAPE + "6",
    "gray": ESCAPE + "7",
    "dark_gray": ESCAPE + "8",
    "blue": ESCAPE + "9",
    "green": ESCAPE + "a",
    "aqua": ESCAPE + "b",
    "red": ESCAPE + "c",
    "light_purple": ESCAPE + "d",
    "yellow": ESCAPE + "e",
    "white": ESCAPE + "f",
}
DEFAULT_COLOR = "black"


def color_code(name):
    return COLOR_CODES.get(str(name), "")


def flatten_component(component):
    """Flatten one JSON text component: coloured extra spans, then its own text."""
    if isinstance(component, str):
        return component
    if isinstance(component, list):
        return "".join(flatten_component(part) for part in component)
    if not isinstance(component, dict):
        return str(component)
    line = ""
    for extra in component.get("extra") or []:
        if isinstance(extra, dict):
            line += color_code(extra.get("color", DEFAULT_COLOR)) + str(extra.get("text", ""))
        else:
            line += color_code(DEFAULT_COLOR) + str(extra)
    return line + str(component.get("text", ""))


def flatten_sign_line(line):
    try:
        data = json.loads(line)
    except ValueError:
        return line
    if isinstance(data, (dict, list, str)):
        return flatten_component(data)
    return line
