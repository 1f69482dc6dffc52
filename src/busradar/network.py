"""Built-in ETUSA (Algiers) network: stations, timetables and route paths."""

# route number -> [(lat, lon, name), ...]
ROUTE_PATHS = {
    "04": [(36.7606, 3.0553, "1er Mai"), (36.7800, 3.0900, "Ben Omar")],
    "05": [(36.7700, 3.0553, "Place Audin"), (36.7847, 3.0625, "Place des Martyrs")],
    "07": [(36.7847, 3.0625, "Place des Martyrs"), (36.7400, 3.1100, "El Harrach")],
    "10": [(36.7606, 3.0553, "1er Mai"), (36.7900, 3.0350, "Bouzareah")],
    "16": [(36.7606, 3.0553, "1er Mai"), (36.7400, 3.0800, "Kouba")],
    "31": [(36.7692, 3.0549, "Place Audin"), (36.7435, 3.0421, "Hydra")],
    "33": [(36.7700, 3.0553, "Place Audin"), (36.7400, 3.0800, "Kouba")],
    "34": [(36.7606, 3.0553, "1er Mai"), (36.7200, 3.0350, "Birkhadem")],
    "45": [(36.7472, 3.0403, "Hydra"), (36.7800, 3.0200, "Ben Aknoun")],
    "48": [(36.7606, 3.0553, "1er Mai"), (36.7800, 3.0200, "Ben Aknoun")],
    "54": [(36.7692, 3.0549, "Place Audin"), (36.7482, 3.0511, "El Mouradia")],
    "58": [(36.7847, 3.0625, "Place des Martyrs"), (36.7300, 3.1200, "Chevalley")],
    "65": [(36.7606, 3.0553, "1er Mai"), (36.7450, 3.0450, "El Madania")],
    "67": [(36.7847, 3.0625, "Place des Martyrs"), (36.7400, 3.0400, "Ben Aknoun")],
    "88": [(36.7472, 3.0403, "Hydra"), (36.7300, 3.0300, "Bir Mourad Raïs")],
    "89": [(36.7606, 3.0553, "1er Mai"), (36.7450, 3.0850, "Vieux Kouba")],
    "90": [(36.7847, 3.0625, "Place des Martyrs"), (36.7100, 2.9800, "Birtouta")],
    "91": [(36.7700, 3.0553, "Place Audin"), (36.7300, 3.1200, "Chevalley")],
    "99": [(36.7606, 3.0553, "1er Mai"), (36.8100, 3.0000, "Aïn Benian")],
    "100": [(36.7847, 3.0625, "Place des Martyrs"), (36.6910, 3.2154, "Aéroport")],
    "101": [(36.7847, 3.0625, "Place des Martyrs"), (36.7100, 2.9800, "Birtouta")],
    "113": [(36.7847, 3.0625, "Place des Martyrs"), (36.7550, 3.0800, "Gare Routière Caroubier")],
}

# (number, destination, interval, start, end)
STATIONS = [
    {
        "id": "martyrs",
        "name": "Place des Martyrs",
        "lat": 36.78646243864091,
        "lon": 3.0624237631875166,
        "address": "Casbah, Algiers",
        "routes": [
            ("100", "Aéroport", 40, "06:00", "05:00"),
            ("101", "Birtouta", 35, "06:00", "05:00"),
            ("99", "Aéroport", 40, "06:00", "05:00"),
            ("58", "Chevalley", 30, "06:00", "05:00"),
            ("67", "Ben Aknoun", 25, "06:00", "05:00"),
            ("07", "El Harrach", 25, "06:00", "05:00"),
            ("90", "Birtouta", 35, "06:00", "05:00"),
            ("113", "Gare Routière Caroubier", 30, "06:00", "05:00"),
        ],
    },
    {
        "id": "audin",
        "name": "Place Maurice Audin",
        "lat": 36.7692411,
        "lon": 3.0549448,
        "address": "Alger Centre",
        "routes": [
            ("31", "Hydra", 25, "06:00", "18:30"),
            ("33", "Kouba", 30, "06:00", "18:30"),
            ("67", "Ben Aknoun", 30, "06:00", "18:30"),
            ("91", "Chevalley", 35, "06:00", "18:30"),
            ("54", "El Mouradia", 20, "06:00", "18:30"),
            ("05", "Place des Martyrs", 20, "06:00", "18:30"),
        ],
    },
    {
        "id": "1mai",
        "name": "1er Mai",
        "lat": 36.76021973877917,
        "lon": 3.0566802899233463,
        "address": "Sidi M'Hamed",
        "routes": [
            ("04", "Ben Omar", 35, "06:00", "18:30"),
            ("10", "Bouzareah", 30, "06:00", "18:30"),
            ("12", "Dély Ibrahim", 35, "06:00", "18:30"),
            ("07", "El Harrach", 25, "06:00", "18:30"),
            ("16", "Kouba", 25, "06:00", "18:30"),
        ],
    },
    {
        "id": "hydra",
        "name": "Hydra",
        "lat": 36.743512017412236,
        "lon": 3.0420763246892846,
        "address": "Hydra Centre",
        "routes": [
            ("31", "Place Audin", 25, "06:00", "18:30"),
            ("88", "Bir Mourad Raïs", 35, "06:00", "18:30"),
            ("45", "Ben Aknoun", 30, "06:00", "18:30"),
        ],
    },
    {
        "id": "mouradia",
        "name": "El Mouradia",
        "lat": 36.74820388941202,
        "lon": 3.051086539207291,
        "address": "El Mouradia",
        "routes": [
            ("54", "Place Audin", 20, "06:00", "18:30"),
            ("34", "1er Mai", 30, "06:00", "18:30"),
            ("45", "Ben Aknoun", 30, "06:00", "18:30"),
        ],
    },
]
