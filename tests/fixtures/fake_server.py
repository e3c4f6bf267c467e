"""
Stand-in for a game server jar.

Reads console commands from stdin and echoes them back:
- "stop" exits with 0
- "crash N" exits with N
With --mode ignore it never reads stdin, so only a kill gets rid of it.
"""
import argparse
import sys
import time


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument('--mode', default='normal', choices=['normal', 'ignore'])
    parser.add_argument('jar', nargs='?')
    args = parser.parse_args()

    print("Done! fake server ready", flush=True)

    if args.mode == 'ignore':
        while True:
            time.sleep(1)

    for line in sys.stdin:
        command = line.strip()
        print(f"> {command}", flush=True)
        if command == 'stop':
            return 0
        if command.startswith('crash'):
            return int(command.split()[1])
    return 0


if __name__ == '__main__':
    sys.exit(main())
