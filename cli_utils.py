from typing import Any, Dict, List

from prettytable import PrettyTable

# --- CLI Formatting ---

JOB_HEADERS = ["ID", "Hostname", "State", "Command", "Result"]


def print_job_table(headers: List[str], data: List[List[Any]]) -> str:
    """Renders rows as a left-aligned PrettyTable."""
    table = PrettyTable()
    table.field_names = headers
    for row in data:
        table.add_row(row)

    table.align = 'l'
    return table.get_string()


def _shorten(text: str, width: int = 40) -> str:
    text = (text or "").replace("\n", "\\n")
    return text if len(text) <= width else text[:width - 3] + "..."


def job_rows(jobs) -> List[List[Any]]:
    return [
        [j["id"], j["hostname"], j["state"], _shorten(j["shell"]), _shorten(j["result"])]
        for j in (job.to_dict() for job in jobs)
    ]


def summary_rows(counts: Dict[str, int]) -> List[List[Any]]:
    return [[state, count] for state, count in counts.items()]
