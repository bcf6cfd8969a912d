import argparse
import pathlib
import os
from typing import Dict, List, Optional

import matplotlib.pyplot as plt
import pandas as pd

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Plot evaluation metrics.")
    measure = ap.add_mutually_exclusive_group(required=True)
    measure.add_argument("--time", action="store_true") #Solve time per size, one box per run and size
    measure.add_argument("--probability", action="store_true") #Success probability per size
    ap.add_argument("--out", default="plots", help="Directory for the PNG files")
    ap.add_argument("paths", nargs="+", help="metrics.csv files or directories holding one")
    return ap.parse_args(argv)

def get_path(path: pathlib.Path) -> pathlib.Path:
    return path / "metrics.csv" if path.is_dir() else path

def load_metrics(paths: List[str]) -> pd.DataFrame:
    frames = []
    for path in paths:
        csv_path = get_path(pathlib.Path(path))
        raw = pd.read_csv(csv_path)
        raw["run"] = csv_path.parent.name or "run"
        frames.append(raw)
    return pd.concat(frames, ignore_index=True)

def get_data(frame: pd.DataFrame, column: str) -> Dict[str, pd.Series]:
    solved = frame[frame["status"].isin(["SAT", "UNSAT"])]
    data = {}
    for (run, size), group in solved.groupby(["run", "num_vars"]):
        data[f"{run} N{size}"] = group[column].reset_index(drop=True)
    return data

def plot(data: Dict[str, pd.Series], file: pathlib.Path, ylabel: str) -> Optional[pathlib.Path]:
    if len(data.keys()) == 0:
        return None
    raw = list(sorted(data.items(), key=lambda x: x[0]))
    values = list(map(lambda x: x[1], raw))
    labels = list(map(lambda x: x[0], raw))

    plt.boxplot(values)
    plt.xticks(range(1, len(labels) + 1), labels, rotation=45, ha="right")
    plt.ylabel(ylabel)
    plt.tight_layout()
    plt.savefig(file)
    plt.clf()
    return file

def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    frame = load_metrics(args.paths)
    plots = pathlib.Path(args.out)
    if not plots.exists():
        os.makedirs(plots)
    if args.time:
        written = plot(get_data(frame, "wall_time_s"), plots / "time_by_run.png", "Seconds")
    else:
        written = plot(get_data(frame, "success_probability"), plots / "probability_by_run.png", "Success probability")
    if written is None:
        print("No solved instances to plot.")
    else:
        print(f"Saved plot -> {written}")

if __name__ == "__main__":
    main()
