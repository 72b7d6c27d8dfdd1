#!/usr/bin/env python3
"""
Pokémon Card Recognition - Kommandozeilen-Interface

Verwendung:
    python main.py --image path/to/card.jpg
    python main.py --webcam
    python main.py --name "Pikachu" --number 58/102
"""

import argparse
import json
import logging
import sys
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(
        description="Pokémon Kartenerkennung - Erkennt Karten per Foto und sucht sie in TCGdex"
    )

    # Eingabe-Optionen
    input_group = parser.add_mutually_exclusive_group(required=True)
    input_group.add_argument(
        "--image", "-i",
        type=str,
        help="Pfad zum Kartenbild"
    )
    input_group.add_argument(
        "--webcam", "-w",
        action="store_true",
        help="Kamera für Live-Erkennung verwenden"
    )
    input_group.add_argument(
        "--name", "-n",
        type=str,
        help="Kartenname für manuelle Suche (mit --number)"
    )

    # Optionen
    parser.add_argument(
        "--number",
        type=str,
        help="Sammlernummer für manuelle Suche, z.B. 58 oder 58/102"
    )
    parser.add_argument(
        "--lang",
        type=str,
        help="Katalogsprache (Standard: fr)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Ausgabe als JSON"
    )
    parser.add_argument(
        "--tesseract-path",
        type=str,
        help="Pfad zur Tesseract-Executable"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Ausführliche Ausgabe"
    )

    args = parser.parse_args()

    if args.name and not args.number:
        parser.error("--name benötigt --number")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    # Importe erst nach Argument-Parsing (schnellerer Start bei --help)
    from pokemon_recognizer import CardMatcher, PokemonCardRecognizer
    from pokemon_recognizer.errors import EngineInitFailed

    recognizer = PokemonCardRecognizer(
        matcher=CardMatcher(lang=args.lang),
        tesseract_path=args.tesseract_path
    )

    with recognizer:
        try:
            if args.image:
                result = process_image(recognizer, args)
            elif args.webcam:
                result = process_webcam(recognizer)
            else:
                result = process_name(recognizer, args)
        except EngineInitFailed as e:
            result = {"success": False, "error": e.user_message}

    # Ausgabe
    if args.json:
        print(json.dumps(result, indent=2, ensure_ascii=False))
    else:
        print_result(result, verbose=args.verbose)

    if not result.get("success"):
        sys.exit(1)


def _session_result(session):
    result = session.to_dict()
    result["success"] = bool(session.candidates)
    return result


def process_image(recognizer, args):
    """Verarbeitet ein einzelnes Bild"""
    image_path = Path(args.image)

    if not image_path.exists():
        return {"success": False, "error": f"Datei nicht gefunden: {args.image}"}

    print(f"Analysiere: {image_path.name}...", file=sys.stderr)

    session = recognizer.recognize_file(image_path.read_bytes())
    return _session_result(session)


def process_webcam(recognizer):
    """Verarbeitet Kamera-Eingabe"""
    import cv2
    from pokemon_recognizer.errors import DeviceUnavailable
    from pokemon_recognizer.models import CaptureMode

    session = recognizer.set_mode(CaptureMode.PHOTO)
    if recognizer.source.active_stream is None:
        return _session_result(session)

    print("Kamera aktiv. Drücke 'SPACE' zum Erfassen, 'Q' zum Beenden.", file=sys.stderr)

    captured = None
    try:
        while True:
            frame = recognizer.source.capture_frame()

            display = frame.copy()
            cv2.putText(display, "SPACE: Erfassen | Q: Beenden",
                        (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (0, 255, 0), 2)
            cv2.imshow("Pokemon Card Scanner", display)

            key = cv2.waitKey(1) & 0xFF
            if key == ord(' '):
                captured = frame
                break
            elif key == ord('q'):
                break
    except DeviceUnavailable as e:
        return {"success": False, "error": e.user_message}
    finally:
        cv2.destroyAllWindows()

    if captured is None:
        return {"success": False, "error": "Keine Aufnahme gemacht"}

    return _session_result(recognizer.recognize_image(captured))


def process_name(recognizer, args):
    """Verarbeitet manuelle Suche"""
    print(f"Suche nach: {args.name} {args.number}...", file=sys.stderr)
    return _session_result(recognizer.manual_search(args.name, args.number))


def print_result(result, verbose=False):
    """Formatierte Konsolenausgabe"""
    print("\n" + "="*50)

    recognition = result.get("result") or {}
    guess = recognition.get("guess")

    if guess:
        print(f"🔤 Erkannt: {guess['name']} {guess['card_number']}/{guess['set_total']}")
        print(f"   Konfidenz: {recognition.get('confidence', 0)}%")

    if result.get("error"):
        print(f"❌ Fehler: {result['error']}")

    if result.get("stage") == "manual_fallback":
        print("✍️  Automatische Erkennung unvollständig. Bitte manuell suchen:")
        prefill = result.get("manual_name") or "<Name>"
        print(f"   python main.py --name \"{prefill}\" --number <Nummer>")

    if verbose and recognition.get("raw_text"):
        print(f"\n   OCR-Rohtext:\n{recognition['raw_text']}")

    candidates = result.get("candidates") or []
    if not candidates:
        if result.get("stage") == "result":
            print("Keine passenden Karten gefunden.")
        print("="*50)
        return

    print(f"\n✅ {len(candidates)} Kandidaten:")
    for i, c in enumerate(candidates, 1):
        set_name = c.get("set_name") or "?"
        print(f"  {i}. {c['name']} #{c['local_id']} ({set_name}) - Score: {c['match_score']}")
        if verbose:
            print(f"      ID:   {c['id']}")
            print(f"      Bild: {c['image_url']}")

    print("="*50)


if __name__ == "__main__":
    main()
